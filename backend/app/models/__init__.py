from .user import User
from .notebook import Notebook, EXTENSION_FIELDS
from .change_request import ChangeRequest, ChangeRequestStatus
from .stage import Stage
from .warning import Warning
from .clickstream import Clickstream
