#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Create the DOB entry indexes ahead of a deployment.
"""

import sys
import os
import logging

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymongo.errors import PyMongoError

from services.mongodb import get_mongodb_service, close_mongodb_connection

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    mongodb_service = get_mongodb_service()
    try:
        health = mongodb_service.health_check()
        if health['status'] != 'healthy':
            logger.error(f"Entry store is not healthy: {health}")
            sys.exit(1)

        logger.info(f"Connected to MongoDB {health['version']} - Database: {health['database']}")
        mongodb_service.create_indexes()

    except PyMongoError as e:
        logger.error(f"Failed to create DOB indexes: {e}")
        sys.exit(1)
    finally:
        close_mongodb_connection()


if __name__ == "__main__":
    main()
