import importlib
import uuid
import warnings
from datetime import datetime, timezone

from pydantic.warnings import PydanticDeprecatedSince20

from quickshow.models.notification import Notification
from quickshow.schemas import booking, notification, show


def test_schemas_define_without_deprecation_warnings():
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        for module in (booking, notification, show):
            importlib.reload(module)

    assert not [w for w in caught if issubclass(w.category, PydanticDeprecatedSince20)]


def test_notification_schema_reads_orm_rows():
    row = Notification(
        id=uuid.uuid4(),
        user_id="user-1",
        title="New Show Added: Arrival",
        message="Book your tickets now!",
        type="show_added",
        is_read=False,
        created_at=datetime(2030, 3, 1, tzinfo=timezone.utc),
    )

    parsed = notification.Notification.model_validate(row)

    assert parsed.user_id == "user-1"
    assert parsed.type == "show_added"
