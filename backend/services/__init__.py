from .ledger import (
    WagerRequest,
    BatchResult,
    open_account,
    get_account,
    submit_wager,
    submit_batch,
    reset_balances,
    betting_stats,
)
from .streaks import (
    record_outcome,
    recalculate_streak,
    validate_and_fix_streaks,
    streak_info,
    streak_history,
)
from .markets import (
    create_market,
    activate_market,
    activate_pending_markets,
    markets_needing_resolution,
    market_stats,
)
from .settlement import (
    SettlementSummary,
    CancellationSummary,
    resolve_market,
    cancel_market,
)
from .achievements import (
    seed_badges,
    evaluate,
    progress_of,
    account_badges,
    badge_overview,
)
from .leaderboard import (
    compute_standing,
    daily_standings,
    account_position,
    period_standings,
)
from .transactions import (
    record_transaction,
    get_account_transactions,
)
