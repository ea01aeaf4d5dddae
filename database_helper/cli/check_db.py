"""
Test database connectivity.

Opens a handle with the environment settings (optionally overridden
on the command line), runs ``SELECT 1`` and logs the outcome.  Exits
with status 2 when the check fails.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from ..errors import DatabaseError
from ..infra.db import open_database


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Check database connectivity')
    parser.add_argument('--driver', type=str, help='Driver name (pyodbc, pymssql or sqlite); defaults to DB_DRIVER')
    parser.add_argument('--database', type=str, help='Database name (or file path for sqlite)')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    overrides = {'database': args.database} if args.database else None
    try:
        with open_database(overrides, driver=args.driver) as db:
            row = db.run_direct('SELECT 1').fetchone()
        logging.info('DB OK: %s', row)
        return 0
    except DatabaseError as e:
        logging.error('DB FAIL:', exc_info=e)
        return 2


if __name__ == '__main__':
    sys.exit(main())
