import pytest

from cfkit._cogs.structs.credentials import Credentials, Token


@pytest.fixture()
def credentials():
    """ A pre-issued never-expiring token: no identity provider is needed in these tests. """
    return Credentials(token=Token(access_token='fake-token'))
