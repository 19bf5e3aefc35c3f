from events.tests.conftest import billing, book, event, normal, pending_booking  # noqa: F401
