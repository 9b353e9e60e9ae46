import logging

from flightpath.models import ErrorKind
from flightpath.services.error_log import ErrorLog

from conftest import DEPARTURE


def test_append_records_entry(caplog):
    log = ErrorLog(max_entries=100, clock=lambda: DEPARTURE)

    with caplog.at_level(logging.ERROR):
        error = log.append(ErrorKind.FLIGHT_NOT_FOUND, 'Flight UA881 not found', 'ord-nrt')

    assert error.kind == ErrorKind.FLIGHT_NOT_FOUND
    assert error.timestamp == DEPARTURE
    assert log.all() == [error]
    assert 'FLIGHT_NOT_FOUND' in caplog.text
    assert error.to_dict() == {
        'type': 'FLIGHT_NOT_FOUND',
        'message': 'Flight UA881 not found',
        'flight_id': 'ord-nrt',
        'timestamp': DEPARTURE.isoformat(),
    }


def test_bounded_to_most_recent():
    log = ErrorLog(max_entries=100)
    for i in range(101):
        log.append(ErrorKind.API_ERROR, f'error {i}')

    assert len(log) == 100
    entries = log.all()
    assert entries[0].message == 'error 1'
    assert entries[-1].message == 'error 100'


def test_recent_and_for_flight():
    log = ErrorLog(max_entries=10)
    log.append(ErrorKind.API_ERROR, 'a', 'f1')
    log.append(ErrorKind.API_ERROR, 'b', 'f2')
    log.append(ErrorKind.NETWORK_ERROR, 'c')

    assert [e.message for e in log.recent(2)] == ['b', 'c']
    assert log.recent(0) == []
    assert [e.message for e in log.for_flight('f1')] == ['a']

    log.clear()
    assert len(log) == 0
