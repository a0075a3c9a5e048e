# routes/health.py
from flask import Blueprint, jsonify
import logging
import time

import db_utils

logger = logging.getLogger(__name__)
health_bp = Blueprint('health', __name__)


@health_bp.route('/health', methods=['GET'])
def health_check():
    """Record store reachability and pool usage"""
    status = {
        'service': 'catalog-sync',
        'pool_stats': db_utils.get_pool_stats(),
        'timestamp': time.time(),
    }

    result = db_utils.test_connection()
    if result is None:
        logger.warning("Health check failed: record store unreachable")
        status.update(status='unhealthy', database='unreachable')
        return jsonify(status), 503

    status.update(
        status='healthy',
        database='connected',
        db_version=result['version'],
        db_time=str(result['current_timestamp']),
    )
    return jsonify(status), 200
