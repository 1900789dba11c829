from sqlalchemy.exc import IntegrityError, OperationalError

from proposal_workflow.core.exceptions import (
    PersistentIOError,
    TransientIOError,
    translate_db_error,
)


def test_constraint_violation_is_persistent_and_hides_driver_text():
    exc = IntegrityError(
        "INSERT INTO proposals ...", {}, Exception("UNIQUE constraint failed: proposals.uuid")
    )

    error = translate_db_error(exc)

    assert isinstance(error, PersistentIOError)
    assert error.status_code == 422
    assert error.detail["error"]["code"] == "PERSISTENT_IO"
    assert "UNIQUE" not in error.error_message
    assert "proposals.uuid" not in str(error.detail)


def test_operational_error_is_transient():
    exc = OperationalError("SELECT 1", {}, Exception("server closed the connection"))

    error = translate_db_error(exc)

    assert isinstance(error, TransientIOError)
    assert error.status_code == 503
    assert "server closed" not in error.error_message
