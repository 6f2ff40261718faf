"""Library Lending API - core application package

This package contains the application modules:
- API endpoints and access gate (api.py)
- Library operations (library.py)
- Borrow/return transitions (lifecycle.py)
- Payload validation (validation.py)
- Record stores (stores.py, database.py)
- Data model (book.py)
- CLI interface (main.py)
"""

__version__ = "1.0.0"
