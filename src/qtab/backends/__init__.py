"""Backends for qtab output generation (CSV table, R import script)."""

from .csv_writer import csv_header, write_csv
from .r_script import generate_r_script, write_r_script

__all__ = ["csv_header", "write_csv", "generate_r_script", "write_r_script"]
