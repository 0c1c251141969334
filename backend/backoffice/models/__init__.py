from backoffice.models import entities  # noqa
