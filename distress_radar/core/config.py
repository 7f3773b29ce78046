import os
import json
from pathlib import Path
from dotenv import load_dotenv
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Callable, List

load_dotenv()


class EnvConfig:
    """Small helper for reading and casting environment variables.

    Usage: EnvConfig.get('FMP_API_KEY', cast=str, aliases=['FMP_KEY'])
    """

    @staticmethod
    def get(name: str, default: Any = None, cast: Optional[Callable] = None, aliases: Optional[list] = None):
        aliases = aliases or []
        for key in (name, *aliases):
            val = os.getenv(key)
            if val is not None:
                if cast is not None:
                    try:
                        return cast(val)
                    except Exception as exc:
                        raise ValueError(f"Invalid value for {key}: {exc}")
                return val
        return default


def parse_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def parse_symbol_list(value: str) -> List[str]:
    return [s.strip().upper() for s in value.split(',') if s.strip()]


def parse_weight_table(value: str) -> Dict[str, float]:
    table = json.loads(value)
    if not isinstance(table, dict):
        raise ValueError('weight table must be a JSON object of factor -> weight')
    return {str(k): float(v) for k, v in table.items()}


# Tickers with a long distress history, always added to the scan universe
DEFAULT_KNOWN_DISTRESS = [
    'MULN', 'FFIE', 'NKLA', 'GOEV', 'RIDE', 'WKHS', 'FSR', 'LCID', 'RIVN',
    'AMC', 'GME', 'BBIG', 'CEI', 'PROG', 'ATER', 'SNDL', 'TLRY',
    'CLOV', 'WISH', 'SOFI', 'HOOD', 'UPST', 'AFRM', 'LMND',
    'BYND', 'OTLY', 'SPCE', 'OPEN', 'ROOT',
]

# Manual override for active ATM/shelf programs the data vendor misses
DEFAULT_KNOWN_DILUTION_ACTIVE = ['AMZE', 'MULN', 'FFIE', 'GOEV', 'NKLA', 'WKHS']

DEBUG = EnvConfig.get('DEBUG', default=False, cast=parse_bool)


@dataclass
class BaseConfig:
    """Mixin-like helper for dataclasses that load from envs and validate."""

    @classmethod
    def _env(cls, name: str, default: Any = None, cast: Optional[Callable] = None, aliases: Optional[list] = None):
        return EnvConfig.get(name, default=default, cast=cast, aliases=aliases)

    def validate(self, required: bool = True):
        """Default no-op; override in subclasses with required flag."""
        return None


@dataclass
class FmpConfig(BaseConfig):
    api_key: Optional[str] = None
    base_url: str = 'https://financialmodelingprep.com/stable'
    request_timeout: float = 10.0
    delay_between_calls: float = 0.2
    max_calls_per_run: int = 5000

    def __post_init__(self):
        self.api_key = self.api_key or self._env('FMP_API_KEY', aliases=['FMP_KEY'])
        self.base_url = self._env('FMP_BASE_URL', default=self.base_url).rstrip('/')
        timeout = self._env('FMP_REQUEST_TIMEOUT', default=None, cast=float)
        if timeout is not None:
            self.request_timeout = timeout
        delay = self._env('FMP_DELAY_BETWEEN_CALLS', default=None, cast=float)
        if delay is not None:
            self.delay_between_calls = delay
        max_calls = self._env('FMP_MAX_CALLS_PER_RUN', default=None, cast=int)
        if max_calls is not None:
            self.max_calls_per_run = max_calls

    def validate(self, required: bool = True) -> None:
        if required and not self.api_key:
            raise ValueError('FMP_API_KEY not set in environment')
        if self.request_timeout <= 0:
            raise ValueError('request_timeout must be > 0')
        if self.delay_between_calls < 0:
            raise ValueError('delay_between_calls must be >= 0')
        if self.max_calls_per_run < 1:
            raise ValueError('max_calls_per_run must be >= 1')


@dataclass
class FunnelConfig(BaseConfig):
    min_market_cap: float = 5_000_000
    max_market_cap: float = 50_000_000_000
    min_price: float = 0.10
    max_price: float = 500.0
    max_universe: int = 500
    min_avg_volume: float = 50_000
    retail_min_market_cap: float = 50_000_000
    retail_max_market_cap: float = 5_000_000_000
    volume_surge_ratio: float = 1.2
    max_analyze: int = 50
    quote_delay: float = 0.05
    attention_delay: float = 0.05
    analysis_delay: float = 0.2
    price_lookback_days: int = 30
    filing_lookback_days: int = 7
    insider_feed_pages: int = 10
    insider_lookback_days: int = 30
    insider_min_market_cap: float = 10_000_000
    insider_min_price: float = 1.0
    insider_min_value_sold: float = 100_000
    known_distress: Optional[List[str]] = None

    def __post_init__(self):
        max_universe = self._env('FUNNEL_MAX_UNIVERSE', default=None, cast=int)
        if max_universe is not None:
            self.max_universe = max_universe
        min_avg_volume = self._env('FUNNEL_MIN_AVG_VOLUME', default=None, cast=float)
        if min_avg_volume is not None:
            self.min_avg_volume = min_avg_volume
        surge = self._env('FUNNEL_VOLUME_SURGE_RATIO', default=None, cast=float)
        if surge is not None:
            self.volume_surge_ratio = surge
        max_analyze = self._env('BANKRUPTCY_MAX_TICKERS', default=None, cast=int, aliases=['FUNNEL_MAX_ANALYZE'])
        if max_analyze is not None:
            self.max_analyze = max_analyze
        lookback = self._env('ATM_FILING_LOOKBACK_DAYS', default=None, cast=int)
        if lookback is not None:
            self.filing_lookback_days = lookback
        pages = self._env('INSIDER_FEED_PAGES', default=None, cast=int)
        if pages is not None:
            self.insider_feed_pages = pages
        insider_days = self._env('INSIDER_LOOKBACK_DAYS', default=None, cast=int)
        if insider_days is not None:
            self.insider_lookback_days = insider_days
        if self.known_distress is None:
            self.known_distress = self._env('KNOWN_DISTRESS_TICKERS', default=list(DEFAULT_KNOWN_DISTRESS), cast=parse_symbol_list)

    def validate(self, required: bool = True) -> None:
        if self.min_market_cap > self.max_market_cap:
            raise ValueError('min_market_cap must be <= max_market_cap')
        if self.min_price > self.max_price:
            raise ValueError('min_price must be <= max_price')
        if self.max_universe < 1 or self.max_analyze < 1:
            raise ValueError('max_universe and max_analyze must be >= 1')
        if min(self.quote_delay, self.attention_delay, self.analysis_delay) < 0:
            raise ValueError('stage delays must be >= 0')
        if self.insider_feed_pages < 1 or self.insider_lookback_days < 1:
            raise ValueError('insider_feed_pages and insider_lookback_days must be >= 1')


@dataclass
class AlertConfig(BaseConfig):
    min_score: float = 40.0
    dilution_min_score: float = 30.0
    shelf_min_score: float = 30.0
    insider_min_score: float = 40.0
    leaderboard_size: int = 10
    cooldown_days: int = 30
    dry_run: bool = True
    data_dir: Path = None

    def __post_init__(self):
        min_score = self._env('LEADERBOARD_MIN_SCORE', default=None, cast=float, aliases=['MIN_ALERT_SCORE'])
        if min_score is not None:
            self.min_score = min_score
        dilution_min = self._env('DILUTION_MIN_SCORE', default=None, cast=float)
        if dilution_min is not None:
            self.dilution_min_score = dilution_min
        shelf_min = self._env('SHELF_MIN_SCORE', default=None, cast=float)
        if shelf_min is not None:
            self.shelf_min_score = shelf_min
        insider_min = self._env('INSIDER_MIN_SCORE', default=None, cast=float)
        if insider_min is not None:
            self.insider_min_score = insider_min
        size = self._env('LEADERBOARD_SIZE', default=None, cast=int)
        if size is not None:
            self.leaderboard_size = size
        cooldown = self._env('BANKRUPTCY_COOLDOWN_DAYS', default=None, cast=int, aliases=['COOLDOWN_DAYS'])
        if cooldown is not None:
            self.cooldown_days = cooldown
        self.dry_run = self._env('DRY_RUN', default=self.dry_run, cast=parse_bool)
        base = self._env('DATA_DIR', default='data')
        self.data_dir = Path(base) if self.data_dir is None else Path(self.data_dir)

    @property
    def cooldown_file(self) -> Path:
        return self.data_dir / 'alert_cooldown.json'

    @property
    def leaderboard_file(self) -> Path:
        return self.data_dir / 'bankruptcy_leaderboard.json'

    @property
    def dilution_leaderboard_file(self) -> Path:
        return self.data_dir / 'dilution_leaderboard.json'

    @property
    def shelf_leaderboard_file(self) -> Path:
        return self.data_dir / 'shelf_leaderboard.json'

    @property
    def insider_leaderboard_file(self) -> Path:
        return self.data_dir / 'insider_leaderboard.json'

    def validate(self, required: bool = True) -> None:
        if not 0 <= self.min_score <= 100:
            raise ValueError('min_score must be between 0 and 100')
        for name in ('dilution_min_score', 'shelf_min_score', 'insider_min_score'):
            if not 0 <= getattr(self, name) <= 100:
                raise ValueError(f'{name} must be between 0 and 100')
        if self.leaderboard_size < 1:
            raise ValueError('leaderboard_size must be >= 1')
        if self.cooldown_days < 0:
            raise ValueError('cooldown_days must be >= 0')


@dataclass
class ScoringConfig(BaseConfig):
    insolvency_weights: Dict[str, float] = field(default_factory=dict)
    attention_weights: Dict[str, float] = field(default_factory=dict)
    dilution_severity_weights: Dict[str, float] = field(default_factory=dict)
    dilution_signal_weights: Dict[str, float] = field(default_factory=dict)
    shelf_weights: Dict[str, float] = field(default_factory=dict)
    insider_weights: Dict[str, float] = field(default_factory=dict)
    index_risk_weight: float = 0.6
    index_attention_weight: float = 0.4
    convergence_min_risk: float = 50.0
    convergence_min_index: float = 60.0
    filing_window_days: int = 180
    known_dilution_active: Optional[List[str]] = None

    def __post_init__(self):
        # Overrides are partial tables; engines merge them over their defaults
        self.insolvency_weights = self.insolvency_weights or self._env('INSOLVENCY_WEIGHTS', default={}, cast=parse_weight_table)
        self.attention_weights = self.attention_weights or self._env('ATTENTION_WEIGHTS', default={}, cast=parse_weight_table)
        self.dilution_severity_weights = self.dilution_severity_weights or self._env(
            'DILUTION_SEVERITY_WEIGHTS', default={}, cast=parse_weight_table)
        self.dilution_signal_weights = self.dilution_signal_weights or self._env(
            'DILUTION_SIGNAL_WEIGHTS', default={}, cast=parse_weight_table)
        self.shelf_weights = self.shelf_weights or self._env('SHELF_WEIGHTS', default={}, cast=parse_weight_table)
        self.insider_weights = self.insider_weights or self._env('INSIDER_WEIGHTS', default={}, cast=parse_weight_table)
        risk_w = self._env('INDEX_RISK_WEIGHT', default=None, cast=float)
        if risk_w is not None:
            self.index_risk_weight = risk_w
        attention_w = self._env('INDEX_ATTENTION_WEIGHT', default=None, cast=float)
        if attention_w is not None:
            self.index_attention_weight = attention_w
        min_risk = self._env('CONVERGENCE_MIN_RISK', default=None, cast=float)
        if min_risk is not None:
            self.convergence_min_risk = min_risk
        min_index = self._env('CONVERGENCE_MIN_INDEX', default=None, cast=float)
        if min_index is not None:
            self.convergence_min_index = min_index
        window = self._env('CONVERGENCE_FILING_WINDOW_DAYS', default=None, cast=int)
        if window is not None:
            self.filing_window_days = window
        if self.known_dilution_active is None:
            self.known_dilution_active = self._env(
                'KNOWN_DILUTION_ACTIVE', default=list(DEFAULT_KNOWN_DILUTION_ACTIVE), cast=parse_symbol_list)

    def validate(self, required: bool = True) -> None:
        if abs(self.index_risk_weight + self.index_attention_weight - 1.0) > 1e-6:
            raise ValueError('index weights must sum to 1.0')
        if self.filing_window_days < 1:
            raise ValueError('filing_window_days must be >= 1')


class AppConfig:
    """Central application configuration container.

    Access sub-configs as attributes (e.g., `config.fmp`).
    Use `AppConfig.from_env()` for a validated instance reflecting the
    current environment.
    """

    def __init__(
        self,
        fmp: Optional[FmpConfig] = None,
        funnel: Optional[FunnelConfig] = None,
        alerts: Optional[AlertConfig] = None,
        scoring: Optional[ScoringConfig] = None,
    ):
        self.fmp = fmp or FmpConfig()
        self.funnel = funnel or FunnelConfig()
        self.alerts = alerts or AlertConfig()
        self.scoring = scoring or ScoringConfig()

    def validate_all(self, strict: bool = False) -> None:
        self.fmp.validate(required=strict)
        self.funnel.validate()
        self.alerts.validate()
        self.scoring.validate()

    @staticmethod
    def check_availability() -> Dict[str, Dict[str, Any]]:
        """Return availability map for each config.

        For each named sub-config return a dict with keys:
        - available: bool
        - reason: Optional[str] explaining failure when available is False
        """
        results: Dict[str, Dict[str, Any]] = {}
        configs = {
            'fmp': FmpConfig,
            'funnel': FunnelConfig,
            'alerts': AlertConfig,
            'scoring': ScoringConfig,
        }
        for name, factory in configs.items():
            try:
                factory().validate(required=True)
                results[name] = {'available': True, 'reason': None}
            except Exception as e:
                results[name] = {'available': False, 'reason': str(e)}
        return results

    @staticmethod
    def from_env(strict: bool = False) -> 'AppConfig':
        config = AppConfig()
        config.validate_all(strict=strict)
        return config
