from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import atomic
from engine import CATALOG, Clock, Progress, is_satisfied, progress, system_clock
from models import AccountBadge, Badge
from services.cache import invalidate_on_commit, view_cache
from services.notifications import BadgeAwarded, queue_event
from services.repository import Repository, rule_for
from services.transactions import record_badge_reward

log = structlog.get_logger(__name__)

# award_key used for badges that can only ever be earned once
ONCE = "once"


@dataclass
class EarnedBadge:
    badge_id: str
    name: str
    description: str
    category: str
    rarity: str
    reward_coins: int
    awarded_at: datetime


@dataclass
class BadgeStatus:
    badge_id: str
    name: str
    description: str
    category: str
    rarity: str
    reward_coins: int
    earned: bool
    progress: Progress


def seed_badges(db: Session) -> int:
    """Sync the built-in catalog into the badges table. Returns rows created."""
    created = 0
    with atomic(db):
        for rule in CATALOG:
            badge = db.query(Badge).filter(Badge.id == rule.slug).first()
            if badge is None:
                badge = Badge(id=rule.slug, is_active=True)
                db.add(badge)
                created += 1
            badge.name = rule.name
            badge.description = rule.description
            badge.category = rule.category
            badge.requirement_type = rule.requirement_type.value
            badge.threshold = rule.threshold
            badge.minimum_sample = rule.minimum_sample
            badge.reward_coins = rule.reward_coins
            badge.rarity = rule.rarity
            badge.repeatable = rule.repeatable

    if created:
        log.info("badges_seeded", created=created)
    return created


def _evaluate_once(db: Session, account_id: str, clock: Clock) -> list[Badge]:
    repo = Repository(db)
    now = clock.now()
    today_key = clock.today().isoformat()

    with atomic(db):
        account = repo.account(account_id, lock=True)
        held = repo.held_awards(account_id)
        history = repo.account_history(account)

        earned = []
        for badge in repo.active_badges():
            award_key = today_key if badge.repeatable else ONCE
            if (badge.id, award_key) in held:
                continue
            if not is_satisfied(rule_for(badge), history):
                continue

            db.add(AccountBadge(
                id=str(uuid4()),
                account_id=account_id,
                badge_id=badge.id,
                award_key=award_key,
                awarded_at=now,
            ))
            if badge.reward_coins:
                account.balance += badge.reward_coins
                record_badge_reward(db, account, badge.id, badge.name, badge.reward_coins, now)

            queue_event(db, BadgeAwarded(
                account_id=account_id,
                badge_id=badge.id,
                name=badge.name,
                reward_coins=badge.reward_coins,
            ))
            earned.append(badge)

        # Surfaces a concurrent award of the same badge as IntegrityError here
        db.flush()
        if earned:
            invalidate_on_commit(db, "account_badges", account_id)

    return earned


def evaluate(db: Session, account_id: str, clock: Clock = system_clock) -> list[Badge]:
    """
    Award every active badge the account now qualifies for.

    Losing a race against a concurrent evaluation trips the award unique
    constraint; that attempt is rolled back in full and evaluation runs once
    more against fresh state.
    """
    try:
        earned = _evaluate_once(db, account_id, clock)
    except IntegrityError:
        log.warning("badge_award_conflict", account_id=account_id)
        earned = _evaluate_once(db, account_id, clock)

    if earned:
        log.info(
            "badges_awarded",
            account_id=account_id,
            badges=[b.id for b in earned],
            reward_coins=sum(b.reward_coins for b in earned),
        )
    return earned


def progress_of(db: Session, account_id: str, badge_id: str) -> Progress:
    repo = Repository(db)
    account = repo.account(account_id)
    badge = repo.badge(badge_id)
    return progress(rule_for(badge), repo.account_history(account))


def account_badges(db: Session, account_id: str) -> list[EarnedBadge]:
    def compute():
        repo = Repository(db)
        repo.account(account_id)
        return [
            EarnedBadge(
                badge_id=award.badge_id,
                name=award.badge.name,
                description=award.badge.description,
                category=award.badge.category,
                rarity=award.badge.rarity,
                reward_coins=award.badge.reward_coins,
                awarded_at=award.awarded_at,
            )
            for award in repo.account_awards(account_id)
        ]

    return view_cache.get_or_compute("account_badges", (account_id,), compute)


def badge_overview(db: Session, account_id: str) -> list[BadgeStatus]:
    repo = Repository(db)
    account = repo.account(account_id)
    history = repo.account_history(account)
    held = {badge_id for badge_id, _ in repo.held_awards(account_id)}

    return [
        BadgeStatus(
            badge_id=badge.id,
            name=badge.name,
            description=badge.description,
            category=badge.category,
            rarity=badge.rarity,
            reward_coins=badge.reward_coins,
            earned=badge.id in held,
            progress=progress(rule_for(badge), history),
        )
        for badge in repo.active_badges()
    ]
