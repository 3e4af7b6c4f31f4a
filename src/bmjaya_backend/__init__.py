"""
BM Jaya Printing Backend - REST API for garment print order management

This package provides a FastAPI-based web service for a garment printing
shop. It enables:

- Staff login (admins and employees) with long-lived bearer tokens
- Print order creation with sequential order numbers (BM-00001, ...)
- Design and pattern reference image uploads
- Production tracking across a fixed nine-step pipeline per order
- Employee management and per-step employee assignment
- Dashboard order counts

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - order_manager: Order CRUD, numbering and dashboard statistics
    - production_manager: Production step pipeline and step photos
    - employee_manager: Employee CRUD and login provisioning
    - auth: Password verification and token issue/verification
    - database: SQLite connection, schema and the order counter
    - storage: Uploaded file storage on the local filesystem
    - configuration: Settings loading and merging logic

Usage:
    Run the API server with:
        uvicorn bmjaya_backend.main:app --host 0.0.0.0 --port 5000

    Give employees default logins with:
        bmjaya-setup-logins
"""
