#!/usr/bin/env python3
"""
Complete Pipeline Demo: QSF + XML → Survey → CSV + R script + codebook

Shows the full workflow:
1. Parse the survey definition (QSF)
2. Read the response export (XML)
3. Write the CSV table
4. Generate the R import script
5. Save a YAML codebook
"""
import logging
import sys
from pathlib import Path

from qtab.backends import generate_r_script, write_csv
from qtab.qsf_parser import parse_qsf_file
from qtab.serialization import survey_to_yaml
from qtab.xml_reader import read_responses_file


SAMPLE_DIR = Path(__file__).parent / "sample_data"


def main(out_dir: str = ".") -> None:
    logging.basicConfig(level=logging.INFO, format="   %(levelname)s %(name)s: %(message)s")
    out = Path(out_dir)
    csv_path = out / "survey.csv"
    r_path = out / "survey.R"
    codebook_path = out / "survey_codebook.yaml"

    print("=" * 80)
    print("COMPLETE PIPELINE DEMO: QSF + XML → CSV → R script → Codebook")
    print("=" * 80)

    # =========================================================================
    # STEP 1: Parse survey definition
    # =========================================================================
    print("\n1. PARSING QSF...")
    survey = parse_qsf_file(str(SAMPLE_DIR / "sample.qsf"))
    print(f"   ✓ Loaded survey: {survey.title}")
    print(f"   ✓ Questions: {len(survey.question_order)}")
    for question in survey.ordered_questions():
        print(f"      - {question.prefix:<6} {question.question_type.value}")

    # =========================================================================
    # STEP 2: Read responses
    # =========================================================================
    print("\n2. READING RESPONSES...")
    survey.responses = read_responses_file(str(SAMPLE_DIR / "sample.xml"))
    finished = sum(1 for r in survey.responses if r.finished)
    print(f"   ✓ Responses: {len(survey.responses)} ({finished} finished)")

    # =========================================================================
    # STEP 3: CSV table
    # =========================================================================
    print("\n3. WRITING CSV...")
    with open(csv_path, "w", encoding="utf-8", newline="") as f:
        write_csv(survey, f)
    print(f"   ✓ Saved {csv_path} ({len(survey.columns())} columns)")

    # =========================================================================
    # STEP 4: R import script
    # =========================================================================
    print("\n4. GENERATING R SCRIPT...")
    script = generate_r_script(survey, csv_path.name)
    r_path.write_text(script, encoding="utf-8")
    print(f"   ✓ Saved {r_path}")
    lines = script.split("\n")
    for line in lines[:20]:
        print(f"   {line}")
    if len(lines) > 20:
        print(f"   ... ({len(lines) - 20} more lines)")

    # =========================================================================
    # STEP 5: Codebook
    # =========================================================================
    print("\n5. SAVING CODEBOOK...")
    codebook_path.write_text(survey_to_yaml(survey), encoding="utf-8")
    print(f"   ✓ Saved {codebook_path}")

    print("\n" + "=" * 80)
    print("PIPELINE COMPLETE!")
    print("\nTo load the table in R:")
    print(f"  Rscript {r_path}")
    print("=" * 80)


if __name__ == "__main__":
    main(*sys.argv[1:2])
