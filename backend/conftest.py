import pytest


@pytest.fixture(autouse=True)
def _allow_consumer_connection_checks(request, django_db_blocker):
	# channels' consumers call close_old_connections() on every dispatch; Django's
	# own runner tolerates that inside SimpleTestCase but pytest-django blocks it.
	if request.cls is not None and request.cls.__name__ == 'RelayConsumerTests':
		with django_db_blocker.unblock():
			yield
	else:
		yield
