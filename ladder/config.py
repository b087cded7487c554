import os
import logging
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Ladder engine configuration settings"""
    
    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///ladder.db')
    
    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')  # Empty string disables file logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')  # Console level; DEBUG=true overrides it
    
    # Queue settings
    QUEUE_CAPACITY = int(os.getenv('QUEUE_CAPACITY', 10))
    QUEUE_ENTRY_TIMEOUT_MINUTES = int(os.getenv('QUEUE_ENTRY_TIMEOUT_MINUTES', 30))
    
    # Match settings
    REQUIRE_HOST_CONFIRMATION = os.getenv('REQUIRE_HOST_CONFIRMATION', 'False').lower() == 'true'
    HOST_CONFIRM_TIMEOUT_MINUTES = int(os.getenv('HOST_CONFIRM_TIMEOUT_MINUTES', 10))
    STALE_MATCH_HOURS = int(os.getenv('STALE_MATCH_HOURS', 6))
    
    # Rank tier tables (names resolved through ladder.utils.rank_tiers)
    PROGRESSION_TABLE = os.getenv('PROGRESSION_TABLE', 'progression')
    PLACEMENT_TABLE = os.getenv('PLACEMENT_TABLE', 'placement')
    
    # Rating settings
    STARTING_RATING = 0
    PLACEMENT_CEILING = int(os.getenv('PLACEMENT_CEILING', 1499))  # Top of GRNDS V
    FALLBACK_WIN_POINTS = 15   # Used when match stats are malformed
    FALLBACK_LOSS_POINTS = -8
    
    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        from ladder.utils.rank_tiers import RANK_TABLES
        
        if not isinstance(logging.getLevelName(cls.LOG_LEVEL.upper()), int):
            raise ValueError(f"Unknown LOG_LEVEL '{cls.LOG_LEVEL}'")
        if cls.QUEUE_CAPACITY <= 0 or cls.QUEUE_CAPACITY % 2 != 0:
            raise ValueError("QUEUE_CAPACITY must be a positive even number")
        for table_name in (cls.PROGRESSION_TABLE, cls.PLACEMENT_TABLE):
            if table_name not in RANK_TABLES:
                raise ValueError(f"Unknown rank table '{table_name}'")
        if cls.PLACEMENT_CEILING < 0:
            raise ValueError("PLACEMENT_CEILING must be non-negative")
        if cls.FALLBACK_WIN_POINTS <= 0 or cls.FALLBACK_LOSS_POINTS >= 0:
            raise ValueError("Fallback points must be positive for wins and negative for losses")
