import json
import logging

import pytest

from config import get_app_config
from finsphere.logging_config import (
    LOGGER_TREES, CorrelationFilter, JSONFormatter, configure_logging, new_correlation_id,
)


@pytest.fixture
def file_logging(tmp_path):
    configure_logging('INFO', str(tmp_path))
    yield tmp_path
    for handler in logging.getLogger(LOGGER_TREES[0]).handlers:
        handler.close()
    configure_logging(get_app_config().log_level)


class TestStructuredLogging:
    """JSON records, correlation ids and logger trees"""

    def test_json_record_carries_event_and_correlation(self):
        new_correlation_id('req-42')
        record = logging.LogRecord('finsphere.lending', logging.INFO, __file__, 10,
                                   "Loan 7 funded by user 3", None, None)
        record.event = 'loan_funded'
        CorrelationFilter().filter(record)

        payload = json.loads(JSONFormatter().format(record))

        assert payload['event'] == 'loan_funded'
        assert payload['correlation_id'] == 'req-42'
        assert payload['message'] == "Loan 7 funded by user 3"

    def test_record_without_event_omits_key(self):
        record = logging.LogRecord('finsphere.feed', logging.INFO, __file__, 1, "plain", None, None)
        assert 'event' not in json.loads(JSONFormatter().format(record))

    def test_cache_logger_uses_configured_handlers(self, file_logging):
        app_handlers = logging.getLogger('finsphere').handlers
        assert logging.getLogger('cache').handlers == app_handlers

        new_correlation_id('job-redis')
        logging.getLogger('cache.redis_client').error("Redis HGET failed for fs:presence:1: refused")

        lines = (file_logging / 'api_errors.log').read_text().splitlines()
        record = json.loads(lines[-1])
        assert record['logger'] == 'cache.redis_client'
        assert record['correlation_id'] == 'job-redis'

    def test_domain_events_reach_json_log(self, file_logging):
        logging.getLogger('finsphere.realtime').info("User 5 authenticated on conn-1",
                                                     extra={"event": "user_online"})

        logs = [p for p in file_logging.iterdir() if p.name.startswith('api_2')]
        record = json.loads(logs[0].read_text().splitlines()[-1])
        assert record['event'] == 'user_online'
