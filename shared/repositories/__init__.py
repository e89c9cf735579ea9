"""Data access layer."""
from shared.repositories.subject_repository import SubjectRepository
from shared.repositories.message_repository import MessageRepository
from shared.repositories.content_repository import ContentRepository
from shared.repositories.tutor_context_repository import TutorContextRepository
from shared.repositories.session_handle_repository import SessionHandleRepository
