#!/usr/bin/env python3
"""
IBM MQ to Snowflake relay
Drains an MQ queue into a Snowflake streaming ingestion channel in micro-batches,
waiting for each batch's offset token to be committed before reading more

Usage:
    python jobs/mq_to_snowflake.py [config.yaml]
    python jobs/mq_to_snowflake.py --config config/mq_relay.yaml --max-cycles 10
"""

import sys
import os
import logging
from pathlib import Path

# Auto-detect project root
PROJECT_ROOT = Path(__file__).parent.parent.absolute()

# Allow running from a checkout without installing the package
sys.path.insert(0, str(PROJECT_ROOT))

from mq_relay.relay import main

# Configure logging
# Always log to stderr; add FileHandler if LOG_DIR is set
handlers = [logging.StreamHandler()]

log_dir_env = os.environ.get('LOG_DIR')
if log_dir_env:
    log_dir = Path(log_dir_env)
    log_dir.mkdir(exist_ok=True, parents=True)
    handlers.append(logging.FileHandler(log_dir / 'mq_relay.log'))

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - [%(threadName)s] - %(name)s - %(levelname)s - %(message)s',
    handlers=handlers
)


if __name__ == "__main__":
    sys.exit(main())
