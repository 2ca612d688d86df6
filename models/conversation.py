from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base
from datetime import datetime

class Conversation(Base):
    __tablename__ = "conversations"
    conversation_id = Column(Integer, primary_key=True, index=True)
    conversation_type = Column(String(20), nullable=False, default="personal")  # 'personal' | 'group' | 'system'
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    # Bumped on every new message; drives recency ordering
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    members = relationship("ConversationMember", back_populates="conversation")
    messages = relationship("Message", back_populates="conversation")


class ConversationMember(Base):
    __tablename__ = "conversation_members"
    __table_args__ = (UniqueConstraint("conversation_id", "user_id", name="uq_conversation_member"),)
    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.conversation_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    left_at = Column(DateTime, nullable=True)  # NULL while the user is still a member
    conversation = relationship("Conversation", back_populates="members")
    user = relationship("User", back_populates="memberships")
