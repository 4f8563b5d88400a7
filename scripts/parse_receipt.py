#!/usr/bin/env python3
"""
Receipt Parser Runner

Extracts amount, currency, merchant, date, description and category from a
receipt image and prints the result as JSON.

Usage: python parse_receipt.py <receipt_image>
"""

import asyncio
import json
import sys
import yaml
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
load_dotenv(project_root / "config" / ".env")

from core.receipt_parser import ReceiptParser


def load_config(config_path: str) -> dict:
    """Load configuration from YAML file."""
    with open(config_path, 'r') as f:
        return yaml.safe_load(f)


def main():
    if len(sys.argv) != 2:
        print("Usage: python parse_receipt.py <receipt_image>")
        sys.exit(1)

    config = load_config(project_root / 'config' / 'calendar_config.yaml')
    parser = ReceiptParser(config)

    result = asyncio.run(parser.parse_receipt(sys.argv[1]))
    if not result.success:
        print(f"❌ {result.error}")
        sys.exit(1)

    if result.data.is_empty:
        print("⚠️  Nothing could be read from this receipt")

    print(json.dumps(result.data.model_dump(mode='json'), indent=2))


if __name__ == "__main__":
    main()
