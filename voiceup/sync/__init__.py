from .chat_view import ChatView, ChatViewState
from .signed_urls import SignedUrlResolver, extract_object_path
