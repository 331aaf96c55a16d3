import logging

import pytest

from es_pager.log import _PlainFormatter, literal
from es_pager.timer import timer


def _format(msg: str) -> str:
    record = logging.LogRecord("es_pager.t", logging.ERROR, __file__, 1, msg, None, None)
    return _PlainFormatter("%(message)s").format(record)


def test_plain_formatter_strips_markup():
    assert _format("[bold green]done[/bold green]") == "done"


def test_plain_formatter_keeps_unparseable_message():
    msg = "no handler found for uri [/idx/_pit?keep_alive=2m] and method [POST]"
    assert _format(msg) == msg


def test_literal_text_survives_markup_round_trip():
    msg = "no handler found for uri [/idx/_pit?keep_alive=2m] and method [POST]"
    assert _format(f"[red]{literal(msg)}[/red]") == msg


def test_timer_records_even_when_block_raises():
    with pytest.raises(RuntimeError):
        with timer() as t:
            raise RuntimeError("boom")
    assert t.ms > 0.0
