import json
import os
import time

import pandas as pd

from cycle_engine import QualificationEngine, ledger_from_dataframe


def main():
    input_file = r"input/ledger.csv"
    settings_file = r"input/settings.json"
    output_file = r"output/cycles.json"

    # Check if input file exists
    if not os.path.exists(input_file):
        print(f"Error: Input file '{input_file}' not found.")
        return

    print(f"Loading ledger from {input_file}...")
    start_time = time.time()
    try:
        df = pd.read_csv(input_file)
        print(f"Loaded {len(df)} rows.")
    except (OSError, ValueError) as e:
        print(f"Error reading CSV: {e}")
        return

    settings = None
    if os.path.exists(settings_file):
        try:
            with open(settings_file, "r", encoding="utf-8") as f:
                settings = json.load(f)
        except (OSError, ValueError) as e:
            print(f"Error reading settings, using defaults: {e}")
    else:
        print(f"No settings file at '{settings_file}', using defaults.")

    # Initialize Cycle Engine
    print("Initializing Cycle Engine...")
    engine = QualificationEngine()

    # Compute cycles
    print("Computing cycles...")
    processing_start = time.time()
    result = engine.compute(ledger_from_dataframe(df), settings)
    processing_time = time.time() - processing_start
    print(f"Computation complete in {processing_time:.2f} seconds.")
    print(f"{len(result.cycles)} cycles, {len(result.secondary_cycles)} secondary cycles, "
          f"{len(result.warnings)} warnings.")

    for warning in result.warnings:
        print(f"  [{warning.code}] {warning.message}")

    # Save Output
    print(f"Saving output to {output_file}...")
    engine.generate_json_output(result, output_file)
    print("Successfully saved output JSON.")

    total_time = time.time() - start_time
    print(f"Total execution time: {total_time:.2f} seconds.")


if __name__ == "__main__":
    main()
