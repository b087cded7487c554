"""
Ladder-wide constants for the rating and matchmaking engine.

Every numeric policy table used by the rating engine and the rank tier tables
is declared here exactly once. Band tables are ordered lowest first; a band
upper bound of ``None`` means the band is open-ended.
"""

class RatingConstants:
    """Constants for the post-match rating update."""
    
    # Logistic expected-score divisor (classic Elo)
    ELO_SCALE = 400
    
    # K-factor by pre-match rating: (minimum rating, K)
    # Checked highest first; everything below 1500 uses the last entry.
    K_FACTOR_BANDS = (
        (3000, 18),  # X
        (2600, 22),  # CHALLENGER III
        (2400, 26),  # CHALLENGER I-II
        (1500, 30),  # BREAKPOINT
        (0, 36),     # GRNDS
    )
    
    # Sticky multipliers by pre-match rating: (minimum rating, gain, loss)
    STICKY_BANDS = (
        (3000, 0.80, 0.90),
        (2600, 0.85, 0.92),
        (1500, 0.90, 0.95),
        (0, 1.00, 1.00),
    )
    
    # Performance multiplier by K/D: (minimum K/D, multiplier)
    WIN_PERFORMANCE_BANDS = (
        (2.0, 1.30),
        (1.5, 1.15),
        (1.0, 1.00),
        (0.7, 0.90),
        (0.0, 0.80),
    )
    LOSS_PERFORMANCE_BANDS = (
        (1.5, 0.90),
        (1.0, 1.00),
        (0.5, 1.10),
        (0.0, 1.20),
    )
    
    # Flat bonuses added after the performance multiplier
    MVP_WIN_BONUS = 6
    MVP_LOSS_BONUS = 3
    TEAM_MVP_WIN_BONUS = 4

class TierConstants:
    """Rank tier band tables: (label, minimum rating, maximum rating or None)."""
    
    UNRANKED_LABEL = "Unranked"
    UNRANKED_VALUE = 0
    
    # Post-match progression ladder
    PROGRESSION_BANDS = (
        ("GRNDS I", 0, 299),
        ("GRNDS II", 300, 599),
        ("GRNDS III", 600, 899),
        ("GRNDS IV", 900, 1199),
        ("GRNDS V", 1200, 1499),
        ("BREAKPOINT I", 1500, 1699),
        ("BREAKPOINT II", 1700, 1899),
        ("BREAKPOINT III", 1900, 2099),
        ("BREAKPOINT IV", 2100, 2299),
        ("BREAKPOINT V", 2300, 2399),
        ("CHALLENGER I", 2400, 2499),
        ("CHALLENGER II", 2500, 2599),
        ("CHALLENGER III", 2600, 2999),
        ("X", 3000, None),
    )
    
    # Initial placement never goes above GRNDS V
    PLACEMENT_BANDS = (
        ("GRNDS I", 0, 299),
        ("GRNDS II", 300, 599),
        ("GRNDS III", 600, 899),
        ("GRNDS IV", 900, 1199),
        ("GRNDS V", 1200, None),
    )

class PlacementConstants:
    """Lookup tables for seeding a new player's rating from an external rank."""
    
    # External value is normalised against this ceiling before interpolation
    EXTERNAL_VALUE_CEILING = 5000
    
    UNKNOWN_BRACKET = (0, 200)
    
    VALORANT_BRACKETS = {
        'Iron 1': (0, 150),
        'Iron 2': (100, 250),
        'Iron 3': (200, 350),
        'Bronze 1': (300, 450),
        'Bronze 2': (350, 500),
        'Bronze 3': (450, 599),
        'Silver 1': (500, 650),
        'Silver 2': (600, 750),
        'Silver 3': (700, 899),
        'Gold 1': (450, 599),
        'Gold 2': (600, 899),
        'Gold 3': (900, 1199),
        'Platinum 1': (900, 1099),
        'Platinum 2': (1100, 1299),
        'Platinum 3': (1200, 1499),
        'Diamond 1': (1250, 1499),
        'Diamond 2': (1300, 1499),
        'Diamond 3': (1350, 1499),
        'Ascendant 1': (1350, 1499),
        'Ascendant 2': (1400, 1499),
        'Ascendant 3': (1450, 1499),
        'Immortal 1': (1450, 1499),
        'Immortal 2': (1450, 1499),
        'Immortal 3': (1450, 1499),
        'Radiant': (1450, 1499),
    }
    
    # Ordered list, used to compare peak and current external ranks
    VALORANT_RANK_ORDER = tuple(VALORANT_BRACKETS.keys())
    
    # Confidence boosts from lifetime stats
    MIN_GAMES_FOR_WIN_RATE_BOOST = 10
    HIGH_WIN_RATE = 0.6
    HIGH_WIN_RATE_BOOST = 50
    ABOVE_AVERAGE_WIN_RATE = 0.5
    ABOVE_AVERAGE_WIN_RATE_BOOST = 25
    PEAK_RANK_STEP_GAP = 3
    PEAK_RANK_BOOST = 30
    
    # Marvel Rivals rank family -> placement tier per division (I, II, III)
    MARVEL_RIVALS_FAMILIES = (
        ('one above all', ('GRNDS V', 'GRNDS V', 'GRNDS V')),
        ('eternity', ('GRNDS V', 'GRNDS V', 'GRNDS V')),
        ('celestial', ('GRNDS V', 'GRNDS V', 'GRNDS V')),
        ('grandmaster', ('GRNDS V', 'GRNDS V', 'GRNDS V')),
        ('diamond', ('GRNDS V', 'GRNDS V', 'GRNDS V')),
        ('plat', ('GRNDS III', 'GRNDS IV', 'GRNDS V')),
        ('gold', ('GRNDS II', 'GRNDS III', 'GRNDS IV')),
        ('silver', ('GRNDS II', 'GRNDS III', 'GRNDS IV')),
        ('bronze', ('GRNDS I', 'GRNDS II', 'GRNDS III')),
    )
    
    # Anchor rating used when no external value is available
    PLACEMENT_ANCHORS = {
        'GRNDS I': 150,
        'GRNDS II': 450,
        'GRNDS III': 750,
        'GRNDS IV': 1050,
        'GRNDS V': 1350,
    }

class HousekeepingConstants:
    """Constants for the periodic housekeeping job."""
    
    DEFAULT_INTERVAL_SECONDS = 60
