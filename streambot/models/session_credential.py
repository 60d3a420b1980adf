from sqlalchemy import Column, DateTime, Text

from streambot.database import Base


class SessionCredential(Base):
    __tablename__ = "session_credentials"

    namespace = Column(Text, primary_key=True)
    key = Column(Text, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
