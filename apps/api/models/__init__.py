"""Models package."""

from .user import User
from .project import Project
from .content import Content
from .external_share import ExternalShare
from .share_content import ShareContent
from .share_access_log import ShareAccessLog
