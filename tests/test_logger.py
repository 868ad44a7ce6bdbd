"""
Logging setup tests.

Guards against:
1. Pipeline chatter leaking into the budget change log
2. Budget changes missing from the budget change log
"""
from adscale.utils.logger import audit_log, log, setup_logger


def test_budget_change_file_only_holds_audit_records(tmp_path):
    setup_logger(log_dir=tmp_path, to_file=True)
    try:
        log.info("Insights sync finished")
        audit_log.info("Approved suggestion 7: act_1 adset a1 budget 100.0 -> 120.0 (USD)")
    finally:
        # Closes the file sinks
        setup_logger(to_file=False)

    [audit_file] = tmp_path.glob("budget_changes_*.log")
    audit_text = audit_file.read_text(encoding="utf-8")

    assert "Approved suggestion 7" in audit_text
    assert "Insights sync finished" not in audit_text
