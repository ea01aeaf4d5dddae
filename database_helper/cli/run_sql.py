"""
Run a parameterised statement from the command line.

``--sql`` takes a statement with ``?`` placeholders and each ``--param``
supplies the next positional value.  Rows are logged by count and, with
``--out``, written to a JSON file.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from ..infra.db import open_database
from ..infra.reporting.json_reporter import write_rows


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Run a SQL statement')
    parser.add_argument('--sql', type=str, required=True, help='Statement to run, using ? placeholders')
    parser.add_argument('--param', action='append', default=[], help='Positional parameter value (repeatable)')
    parser.add_argument('--driver', type=str, help='Driver name (pyodbc, pymssql or sqlite); defaults to DB_DRIVER')
    parser.add_argument('--database', type=str, help='Database name (or file path for sqlite)')
    parser.add_argument('--out', type=str, help='Write fetched rows to this JSON file')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> List[dict]:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    logging.info('[cli/run_sql] Parsed arguments', extra={'params': args.param, 'driver': args.driver})
    overrides = {'database': args.database} if args.database else None
    with open_database(overrides, driver=args.driver, logger=logging.getLogger('database_helper.errors')) as db:
        statement = db.query(args.sql, args.param)
        rows = statement.fetch_dicts()
    logging.info('[cli/run_sql] returned rows', extra={'count': len(rows)})
    if args.out:
        write_rows(args.out, rows)
    return rows


if __name__ == '__main__':
    try:
        main()
    except Exception as err:
        logging.error('Error executing cli/run_sql', exc_info=err)
        sys.exit(2)
