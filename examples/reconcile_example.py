"""Example usage of the reconciliation system with CSV exports."""

import pandas as pd
import logging
from pathlib import Path

from reconciler.config.models import FieldMapping, MatchStatus, ReconciliationConfig
from reconciler.core.engine import ReconciliationEngine


def create_inventory_config(fuzzy_threshold: float = 0.8) -> ReconciliationConfig:
    """
    Create a configuration for reconciling two server inventories.

    Args:
        fuzzy_threshold: Minimum average key similarity for fuzzy matches

    Returns:
        ReconciliationConfig: Configuration keyed on the host name
    """
    return ReconciliationConfig(
        mappings=[
            FieldMapping(
                id='m1',
                source_field='name',
                target_field='hostname',
                is_key=True
            ),
            FieldMapping(
                id='m2',
                source_field='ip',
                target_field='address'
            ),
            FieldMapping(
                id='m3',
                source_field='owner',
                target_field='contact_email'
            ),
        ],
        fuzzy_threshold=fuzzy_threshold,
    )


def reconcile_csv_files(
    source_file: Path,
    target_file: Path,
    strategy: str = 'fuzzy',
    fuzzy_threshold: float = 0.8
) -> pd.DataFrame:
    """
    Reconcile two CSV files.

    Args:
        source_file: Path to the source CSV file
        target_file: Path to the target CSV file
        strategy: Matching strategy ('exact' or 'fuzzy')
        fuzzy_threshold: Threshold for fuzzy matching

    Returns:
        pd.DataFrame: One row per reconciliation result
    """
    try:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(levelname)s - %(message)s'
        )

        logging.info(f"Reading source file: {source_file}")
        source_df = pd.read_csv(source_file, dtype=str).fillna('')

        logging.info(f"Reading target file: {target_file}")
        target_df = pd.read_csv(target_file, dtype=str).fillna('')

        engine = ReconciliationEngine(strategy=strategy)
        result = engine.reconcile(
            source_df,
            target_df,
            create_inventory_config(fuzzy_threshold)
        )

        summary = result.summary
        logging.info("\nReconciliation Statistics:")
        logging.info(f"Total results: {summary.total}")
        logging.info(f"Matched: {summary.matched}")
        logging.info(f"Conflicts: {summary.conflicts}")
        logging.info(
            f"Orphans: {summary.orphans.source} source, {summary.orphans.target} target"
        )

        conflicts = [r for r in result.results if r.status is MatchStatus.CONFLICT]
        if conflicts:
            logging.info("\nConflicting fields:")
            for conflict in conflicts:
                for field_name, values in conflict.differences.items():
                    logging.info(
                        f"{field_name}: {values['source']!r} != {values['target']!r} "
                        f"(confidence {conflict.confidence_score:.2f})"
                    )

        return result.to_dataframe()

    except Exception as e:
        logging.error(f"An error occurred: {e}", exc_info=True)
        raise

if __name__ == "__main__":
    results_df = reconcile_csv_files(
        source_file=Path('data/source_inventory.csv'),
        target_file=Path('data/target_inventory.csv'),
        strategy='fuzzy',
        fuzzy_threshold=0.8
    )
    print(results_df.head())
