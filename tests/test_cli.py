from medical_news.config import Settings
from medical_news.models import ArticleStatus
from medical_news.pipeline import _build_parser, _run_command

SETTINGS = Settings(postgres_dsn="postgresql://localhost/mednews")


def _run(argv, store, settings=SETTINGS):
    return _run_command(_build_parser().parse_args(argv), store, settings)


def test_add_reports_validation_errors(store) -> None:
    assert _run(["add", "CDC measles outbreak alert", "--priority", "2"], store) == {"success": True, "headline_id": 1}

    result = _run(["add", "Stocks rally"], store)

    assert result["success"] is False
    assert "Headline does not appear to be medical/health related" in result["errors"]


def test_import_reports_accepted_and_rejected(store, tmp_path) -> None:
    path = tmp_path / "batch.txt"
    path.write_text("Cancer screening guidance updated\nStocks rally\n", encoding="utf-8")

    result = _run(["import", str(path), "--category", "Oncology"], store)

    assert result["success"] is True
    assert result["accepted"] == 1
    assert result["rejected"][0]["line"] == 2


def test_cron_is_a_no_op_when_auto_process_is_off(store) -> None:
    store.insert_headline("Diabetes drug trial shows mixed results")

    result = _run(["cron"], store)

    assert result == {"success": True, "message": "Auto-processing disabled", "processed": 0}
    assert store.articles == {}


def test_process_without_credentials_fails_headline(store) -> None:
    headline_id = store.insert_headline("Diabetes drug trial shows mixed results")

    result = _run(["process", str(headline_id)], store)

    assert result["success"] is False
    assert result["failure"]["kind"] == "configuration"


def test_review_without_publisher_reports_failure(store) -> None:
    result = _run(["review", "99", "approve"], store)

    assert result["success"] is False
    assert result["failure"]["kind"] == "not_found"


def test_pending_review_lists_queue(store) -> None:
    headline_id = store.insert_headline("Heart surgery wait times grow")
    research_id = store.insert_research(headline_id=headline_id, query="q", response="r", sources=[])
    store.insert_article(headline_id=headline_id, research_id=research_id, content="x", llm_used="openai")

    result = _run(["pending-review"], store)

    assert result["articles"][0]["headline"] == "Heart surgery wait times grow"
    assert result["articles"][0]["status"] == ArticleStatus.DRAFT.value
