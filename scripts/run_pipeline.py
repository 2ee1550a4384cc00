#!/usr/bin/env python3
"""
Review authenticity pipeline runner
Fetches and scores one product's reviews from the command line
"""

import sys
import os
import argparse
import time
import logging

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from utils.logging_config import setup_logging
from utils.helpers import generate_run_id, validate_config, format_duration, is_valid_product_id, save_json_safely
from scoring.grading import grade_description
from services.analysis_service import build_default_service, public_status

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Analyze a product\'s reviews for authenticity')
    parser.add_argument('--product-id', required=True, help='10-character product id (ASIN)')
    parser.add_argument('--country', default='us', help='Marketplace country code (default: us)')
    parser.add_argument('--service', help='Primary review source: brightdata, ajax, direct or unwrangle')
    parser.add_argument('--chunk-size', type=int, help='Reviews per LLM request')
    parser.add_argument('--max-workers', type=int, help='Concurrent chunk requests')
    parser.add_argument('--model', help='LLM model (default: LLM_MODEL or gpt-4o-mini)')
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--output', help='Write the final record to this JSON file')
    return parser


def main(argv=None) -> int:
    """Main pipeline execution function"""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    run_id = generate_run_id()
    logger.info(f"Starting review analysis {run_id} for {args.product_id}/{args.country}")

    if not is_valid_product_id(args.product_id):
        logger.error(f"Invalid product id: {args.product_id}")
        return 2

    issues = validate_config()
    if issues:
        logger.error("Configuration issues found:")
        for issue in issues:
            logger.error(f"  - {issue}")
        return 1

    service = build_default_service(
        review_service=args.service,
        chunk_size=args.chunk_size,
        max_workers=args.max_workers,
        model=args.model,
    )

    started = time.time()
    try:
        # Run inline so the command only returns once the record is final
        state = service.submit_for_analysis(args.product_id, args.country, in_background=True)
    finally:
        service.shutdown(wait=True)

    status = public_status(state)
    elapsed = format_duration(time.time() - started)
    if status == 'completed':
        logger.info(f"Analysis completed in {elapsed}")
        print(f"Product:          {state.product_id} ({state.country})")
        print(f"Reviews analyzed: {len(state.reviews)}")
        print(f"Fake reviews:     {state.fake_percentage}%")
        print(f"Grade:            {state.grade} - {grade_description(state.grade)}")
        print(f"Rating:           {state.amazon_rating} -> {state.adjusted_rating} adjusted")
        print(f"Explanation:      {state.explanation}")
    else:
        logger.error(f"Analysis {status} after {elapsed}: {state.failure_reason or 'no result'}")

    if args.output:
        if save_json_safely(state.to_dict(), args.output):
            logger.info(f"Result written to {args.output}")

    return 0 if status == 'completed' else 1


if __name__ == "__main__":
    sys.exit(main())
