"""
Root pytest configuration.
Switches the app to its testing profile (in-memory SQLite, in-process Redis)
before any application module is imported.
"""
import os

os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ.setdefault("SSLCOMMERZ_STORE_ID", "paaniyo_test")
os.environ.setdefault("SSLCOMMERZ_STORE_PASSWORD", "paaniyo_test@ssl")
