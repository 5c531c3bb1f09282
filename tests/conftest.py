"""
Shared pytest fixtures for the Threat Watch test suite.

Autouse fixtures below isolate tests from live state:
  - Audit logger -> temp directory (no audit_logs/ in the working tree)
  - API services -> emptied after each test
"""

import pytest


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path):
    """Point the global AuditLogger at a temp directory for every test.

    Anything that calls ``get_audit_logger().log_event(...)`` (the
    aggregator, schedulers, CLI) writes here instead of ./audit_logs/.
    """
    import threat_watch.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = audit_mod.AuditLogger(log_dir=tmp_path / "audit_logs")

    yield audit_mod._audit_logger

    audit_mod._audit_logger.close()
    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _isolate_api_services():
    """Drop any schedulers a test registered with the API holder."""
    from threat_watch.api.threat_routes import services

    yield
    services.clear()
