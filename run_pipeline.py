"""
Registry Builder - Command Line
===============================
Builds the database registry from two extraction exports and writes it
to disk together with the unidentified-database diagnostics.

Usage:
    python run_pipeline.py strategy1.csv strategy2.csv --contacts contacts.xlsx
"""

import argparse
import logging
import sys
from pathlib import Path

from shared.config import get_settings
from registry.core.data_processor import DataProcessor
from registry.core.exceptions import RegistryPipelineError
from registry.core.pipeline import RegistryPipeline

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the candidate database registry")
    parser.add_argument("source_1", type=Path, help="Extraction export of the first search strategy")
    parser.add_argument("source_2", type=Path, help="Extraction export of the second search strategy")
    parser.add_argument("--contacts", type=Path, default=None, help="Contact registry (CSV or Excel)")
    parser.add_argument("--output", type=Path, default=None, help="Registry output file (.csv or .xlsx)")
    parser.add_argument("--strict", action="store_true", help="Fail on within-database field conflicts")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    settings = get_settings()
    output = args.output or settings.output_dir / "database_registry.csv"
    processor = DataProcessor()

    try:
        source_1 = processor.parse_file(args.source_1)
        source_2 = processor.parse_file(args.source_2)
        contacts = processor.parse_file(args.contacts) if args.contacts else None

        for path, df in [(args.source_1, source_1), (args.source_2, source_2)]:
            for warning in processor.validate_export(df):
                logger.warning(f"{path.name}: {warning}")

        pipeline = RegistryPipeline(strict_consistency=True if args.strict else None)
        result = pipeline.run(source_1, source_2, contacts)
    except RegistryPipelineError as e:
        logger.error(f"❌ Registry build failed: {e}")
        return 2
    except (OSError, ValueError) as e:
        logger.error(f"❌ Could not read input: {e}")
        return 1

    processor.export_dataframe(result.registry, output)
    if result.unidentified is not None and len(result.unidentified):
        unidentified_path = Path(output).with_name(Path(output).stem + "_unidentified.csv")
        processor.export_dataframe(result.unidentified, unidentified_path)

    print(result.merge_summary)
    print(result.summary_text)
    for warning in result.warnings:
        print(f"⚠️  {warning}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
