import json
import sys
from datetime import date
from decimal import Decimal

import pytest
from loguru import logger

from statement_ingest.logging_config import DebugArtifacts, configure_logging
from statement_ingest.models import Direction, ParsedTransaction
from statement_ingest.pipeline import Pipeline


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.configure(extra={})
    logger.add(sys.stderr)


def test_artifacts_are_grouped_by_upload(tmp_path):
    artifacts = DebugArtifacts(tmp_path / "debug")
    tx = ParsedTransaction(
        date=date(2024, 3, 15), description="Coffee", amount=Decimal("4.50"), direction=Direction.OUTFLOW
    )

    text_path = artifacts.save_text("march statement", "text_markers", "03/15/2024 COFFEE -$4.50")
    json_path = artifacts.save_json("march statement", "parsed", [tx])

    assert text_path == tmp_path / "debug" / "march_statement" / "text_markers.txt"
    assert text_path.read_text(encoding="utf-8") == "03/15/2024 COFFEE -$4.50"
    assert json_path == tmp_path / "debug" / "march_statement" / "parsed.json"
    record = json.loads(json_path.read_text(encoding="utf-8"))[0]
    assert (record["date"], record["amount"], record["direction"]) == ("2024-03-15", "4.50", "expense")


def test_disabled_artifacts_write_nothing():
    artifacts = DebugArtifacts()
    assert artifacts.save_text("up-1", "text_markers", "x") is None
    assert artifacts.save_json("up-1", "parsed", []) is None


def test_pipeline_saves_each_stage_under_the_upload(tmp_path, store, settings):
    artifacts = DebugArtifacts(tmp_path)
    with Pipeline(store, settings=settings, debug_artifacts=artifacts) as pipeline:
        pipeline.process_file(b"03/15/2024,Coffee,-4.50\n", "march.csv", user_id="u1", upload_id="up-3")

    assert sorted(p.name for p in (tmp_path / "up-3").iterdir()) == ["categorized.json", "parsed.json"]


def test_log_records_are_tagged_with_the_upload(capsys, restore_logger):
    configure_logging(verbose=True)

    with logger.contextualize(upload="up-7"):
        logger.info("inside")
    logger.info("outside")

    inside, outside = capsys.readouterr().err.splitlines()
    assert "up-7" in inside and "inside" in inside
    assert "up-7" not in outside and "outside" in outside


def test_pipeline_logs_carry_the_upload(store, settings):
    uploads = []
    handler_id = logger.add(lambda message: uploads.append(message.record["extra"].get("upload")), level="INFO")
    try:
        with Pipeline(store, settings=settings) as pipeline:
            pipeline.process_file(b"03/15/2024,Coffee,-4.50\n", "march.csv", user_id="u1", upload_id="up-9")
    finally:
        logger.remove(handler_id)

    assert "up-9" in uploads
