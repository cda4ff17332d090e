import logging
import os
import tempfile

from scriptmanager.monitor import LOGGER_NAME, log_event, set_verbose, setup_monitoring, tail_events


def test_monitor_writes_event_to_file():
    with tempfile.TemporaryDirectory() as tmp:
        logfile = os.path.join(tmp, 'events.log')

        logger = setup_monitoring(log_file=logfile, echo=False)

        log_event('test.event', 'monitor alive')

        for h in logger.handlers:
            h.flush()

        with open(logfile, 'r', encoding='utf-8') as f:
            content = f.read()

        assert 'test.event: monitor alive' in content
        assert '| INFO |' in content

        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()


def test_tail_events_returns_last_lines():
    with tempfile.TemporaryDirectory() as tmp:
        logfile = os.path.join(tmp, 'events.log')
        logger = setup_monitoring(log_file=logfile, echo=False)

        for i in range(5):
            log_event('test.tail', f'line {i}')
        for h in logger.handlers:
            h.flush()

        lines = tail_events(2, log_file=logfile)
        assert len(lines) == 2
        assert lines[0].endswith('test.tail: line 3')
        assert lines[1].endswith('test.tail: line 4')

        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()

    assert tail_events(log_file=os.path.join(tmp, 'gone.log')) == []


def test_set_verbose_toggles_debug():
    logger = logging.getLogger(LOGGER_NAME)
    set_verbose(True)
    assert logger.level == logging.DEBUG
    set_verbose(False)
    assert logger.level == logging.INFO
