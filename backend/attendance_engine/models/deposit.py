"""Deposit policy per program and deposit state per participant."""
from enum import Enum

from attendance_engine import db
from attendance_engine.models.base import BaseModel


class DepositStatus(Enum):
    NONE = 'NONE'
    UNPAID = 'UNPAID'
    PAID = 'PAID'
    RETURNED = 'RETURNED'
    FORFEITED = 'FORFEITED'
    CARRIED = 'CARRIED'


SETTLED_STATUSES = (DepositStatus.RETURNED, DepositStatus.FORFEITED, DepositStatus.CARRIED)


class ShortfallAction(Enum):
    """What happens to the unreturned part of a deposit."""
    FORFEIT = 'FORFEIT'
    CARRY = 'CARRY'


# Attendance-only defaults: 100% -> full, 80%+ -> 80%, 60%+ -> 60%, else nothing
DEFAULT_MINIMUM_RATE = 100.0
DEFAULT_REFUND_TIERS = ((80.0, 80), (60.0, 60))


class DepositPolicy(BaseModel):
    """How a program's deposits are returned against attendance."""

    __tablename__ = 'deposit_policies'

    program_id = db.Column(db.Integer, db.ForeignKey('programs.id'), nullable=False, unique=True)
    deposit_amount = db.Column(db.Integer, nullable=False)
    minimum_rate = db.Column(db.Float, nullable=False, default=DEFAULT_MINIMUM_RATE)
    shortfall_action = db.Column(
        db.Enum(ShortfallAction), nullable=False, default=ShortfallAction.FORFEIT
    )

    # Late threshold for this program's sessions; None falls back to config
    grace_minutes = db.Column(db.Integer, nullable=True)

    program = db.relationship('Program', backref=db.backref('deposit_policy', uselist=False))
    tiers = db.relationship(
        'RefundTier', backref='policy', order_by='RefundTier.min_rate.desc()',
        cascade='all, delete-orphan'
    )

    def refund_percent_for(self, rate: float) -> int:
        """Percentage of the deposit returned at the given attendance rate."""
        if rate >= self.minimum_rate:
            return 100
        for tier in sorted(self.tiers, key=lambda t: t.min_rate, reverse=True):
            if rate >= tier.min_rate:
                return tier.refund_percent
        return 0

    def to_dict(self, exclude: list = None):
        data = super().to_dict(exclude=exclude)
        data['tiers'] = [tier.to_dict(exclude=['policy_id']) for tier in self.tiers]
        return data


class RefundTier(BaseModel):
    """Partial return below the full-return threshold."""

    __tablename__ = 'refund_tiers'
    __table_args__ = (
        db.UniqueConstraint('policy_id', 'min_rate', name='uq_refund_tier_rate'),
    )

    policy_id = db.Column(db.Integer, db.ForeignKey('deposit_policies.id'), nullable=False)
    min_rate = db.Column(db.Float, nullable=False)
    refund_percent = db.Column(db.Integer, nullable=False)
    label = db.Column(db.String(100), nullable=True)


class Deposit(BaseModel):
    """A participant's deposit and, once settled, its frozen outcome."""

    __tablename__ = 'deposits'

    participant_id = db.Column(db.Integer, db.ForeignKey('participants.id'), nullable=False, unique=True)
    status = db.Column(db.Enum(DepositStatus), nullable=False, default=DepositStatus.NONE)
    amount = db.Column(db.Integer, nullable=False, default=0)
    paid_at = db.Column(db.DateTime, nullable=True)

    # Settlement snapshot
    return_amount = db.Column(db.Integer, nullable=True)
    forfeit_amount = db.Column(db.Integer, nullable=True)
    final_attendance_rate = db.Column(db.Float, nullable=True)
    settled_at = db.Column(db.DateTime, nullable=True)
    settled_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    settle_note = db.Column(db.Text, nullable=True)

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES

    def __repr__(self):
        return f'<Deposit {self.participant_id} {self.status.value}>'
