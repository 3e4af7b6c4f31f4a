"""
Give employees without an account a default login.

Usage:
    bmjaya-setup-logins

Uses the same configuration as the API (config/config.yaml, BMJAYA_* env).
Each new username is the employee name lowercased without spaces and the
temporary password is that username followed by "2024"; share them with the
employees and have them change it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .configuration import get_settings
from .database import Database
from .employee_manager import EmployeeManager


def main() -> int:
    settings = get_settings()
    logging.basicConfig(level=settings.logging.level.upper())

    manager = EmployeeManager(Database(Path(settings.database.path)))
    credentials = manager.provision_logins()

    if not credentials:
        print("All employees already have login credentials.")
        return 0

    print(f"Created login credentials for {len(credentials)} employee(s):\n")
    for entry in credentials:
        print(f"  {entry.nama}")
        print(f"    Username:      {entry.username}")
        print(f"    Temp password: {entry.temporary_password}\n")
    print("Ask each employee to change the temporary password after the first login.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
