"""
qtab: Qualtrics export to analysis-ready tables.

Turns a survey definition (QSF, JSON) and a response export (XML) into:
    - a flat CSV table, one row per response
    - an R (readr) import script typed to match that table
    - an optional codebook (JSON/YAML)

Pipeline:
    parse_qsf()  →  Survey
    read_responses()  →  Survey.responses
    write_csv() / write_r_script()  →  artifacts

The core never opens files on its own behalf and never configures logging.
"""

__version__ = "0.3.0"
