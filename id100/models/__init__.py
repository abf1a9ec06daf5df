# Import all models so Base.metadata is populated for create_all.
from id100.models.token import UploadToken  # noqa: F401
from id100.models.invitation import SessionInvitation  # noqa: F401
from id100.models.authorized_session import AuthorizedSession  # noqa: F401
from id100.models.contribution import Contribution  # noqa: F401
from id100.models.upload_log import UploadLog  # noqa: F401
from id100.models.bag_request import BagRequest  # noqa: F401
