# Keeps the repository root importable so tests can import tests._test_path.
