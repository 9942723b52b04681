"""Daily close model - marks a franchise's business day as closed."""
from sqlalchemy import Column, String, Date, DateTime, UniqueConstraint
from franchise_pos.database import Base, IdType
from franchise_pos.utils.clock import utcnow
from franchise_pos.utils.formatters import iso


class DailyClose(Base):
    """One row per (franchise, day); closing again refreshes closed_at/closed_by."""

    __tablename__ = 'daily_close'
    __table_args__ = (
        UniqueConstraint('franchise_id', 'day', name='uq_daily_close_franchise_day'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    franchise_id = Column(String(64), nullable=False, index=True)
    day = Column(Date, nullable=False)
    closed_by = Column(String(64), nullable=False)
    closed_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<DailyClose(franchise_id='{self.franchise_id}', day={self.day}, closed_by='{self.closed_by}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'franchise_id': self.franchise_id,
            'day': iso(self.day),
            'closed_by': self.closed_by,
            'closed_at': iso(self.closed_at),
        }
