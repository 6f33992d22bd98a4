# mise/__init__.py
