from .auth_user import AuthUser
from .profile import Profile
from .chat import Chat, ChatParticipant
from .message import Message, MessageReadStatus
from .friendship import Friendship
from .push_token import PushToken
