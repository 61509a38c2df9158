from .rules import BadgeRule, RequirementType as R

# Loaded once at startup and synced into the badges table; never mutated.
CATALOG: tuple[BadgeRule, ...] = (
    # Prediction count
    BadgeRule("first_prediction", "First Steps", "Make your first prediction",
              "prediction_count", R.COUNT, 1, 50),
    BadgeRule("prediction_10", "Getting Started", "Make 10 predictions",
              "prediction_count", R.COUNT, 10, 100),
    BadgeRule("prediction_100", "Dedicated Player", "Make 100 predictions",
              "prediction_count", R.COUNT, 100, 500, rarity="uncommon"),
    BadgeRule("prediction_1000", "Prediction Master", "Make 1000 predictions",
              "prediction_count", R.COUNT, 1000, 2000, rarity="rare"),

    # Accuracy
    BadgeRule("accuracy_70", "Sharp Eye", "Achieve 70% accuracy over 20 predictions",
              "accuracy", R.PERCENTAGE, 70, 200, rarity="uncommon", minimum_sample=20),
    BadgeRule("accuracy_80", "Expert Predictor", "Achieve 80% accuracy over 50 predictions",
              "accuracy", R.PERCENTAGE, 80, 500, rarity="rare", minimum_sample=50),
    BadgeRule("accuracy_90", "Oracle", "Achieve 90% accuracy over 100 predictions",
              "accuracy", R.PERCENTAGE, 90, 1000, rarity="legendary", minimum_sample=100),

    # Streaks
    BadgeRule("streak_5", "Hot Streak", "Get 5 correct predictions in a row",
              "streak", R.STREAK, 5, 150),
    BadgeRule("streak_10", "On Fire", "Get 10 correct predictions in a row",
              "streak", R.STREAK, 10, 400, rarity="uncommon"),
    BadgeRule("streak_20", "Unstoppable", "Get 20 correct predictions in a row",
              "streak", R.STREAK, 20, 1000, rarity="rare"),

    # Winnings
    BadgeRule("winnings_1000", "First Thousand", "Earn 1,000 coins in winnings",
              "winnings", R.CUMULATIVE, 1000, 100),
    BadgeRule("winnings_10000", "Big Winner", "Earn 10,000 coins in winnings",
              "winnings", R.CUMULATIVE, 10000, 500, rarity="uncommon"),
    BadgeRule("winnings_100000", "Jackpot King", "Earn 100,000 coins in winnings",
              "winnings", R.CUMULATIVE, 100000, 2000, rarity="legendary"),

    # Participation
    BadgeRule("daily_7", "Week Warrior", "Make predictions on 7 consecutive days",
              "participation", R.CONSECUTIVE_DAYS, 7, 200),
    BadgeRule("daily_30", "Monthly Champion", "Make predictions on 30 consecutive days",
              "participation", R.CONSECUTIVE_DAYS, 30, 1000, rarity="rare"),

    # Special
    BadgeRule("perfect_day", "Perfect Day",
              "Get all predictions correct in a single day (minimum 5)",
              "special", R.PERFECT_DAY, 5, 300, rarity="rare"),
    BadgeRule("comeback_king", "Comeback King",
              "Win 5 predictions in a row after losing 3 in a row",
              "special", R.COMEBACK, 5, 400, rarity="uncommon"),
)


def find_rule(slug: str):
    for rule in CATALOG:
        if rule.slug == slug:
            return rule
    return None
