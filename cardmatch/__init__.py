"""Core module for card-matcher."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class CardSet:
    """A set from the reference catalog (e.g. '2024 Topps Chrome')."""

    set_id: int
    name: str
    year: Optional[int] = None
    organization_id: Optional[int] = None


@dataclass(frozen=True)
class Series:
    """A series inside a set; parallels point at their base series."""

    series_id: int
    name: str
    set_id: int
    is_base: bool = False
    parallel_of: Optional[int] = None
    color_id: Optional[int] = None


@dataclass(frozen=True)
class Color:
    """A color/parallel name (e.g. 'Gold Refractor')."""

    color_id: int
    name: str


@dataclass(frozen=True)
class Team:
    """A team from the reference catalog."""

    team_id: int
    name: str
    city: str = ''
    mascot: str = ''
    abbreviation: str = ''
    organization_id: Optional[int] = None


@dataclass(frozen=True)
class Player:
    """A player from the reference catalog."""

    player_id: int
    first_name: str
    last_name: str
    nick_name: str = ''

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'.strip()


@dataclass(frozen=True)
class PlayerTeam:
    """An existing player-team association (unique per pair)."""

    player_team_id: int
    player_id: int
    team_id: int


@dataclass(frozen=True)
class PlayerAlias:
    """A registered alternative name for a player."""

    player_id: int
    alias_name: str


@dataclass(frozen=True)
class ExistingCard:
    """A card already present in the catalog, used for duplicate checks."""

    card_id: int
    series_id: int
    card_number: str
    player_team_ids: tuple[int, ...] = ()


@dataclass
class PlayerRecord:
    """A player grouped with every team the player is associated with."""

    player: Player
    teams: list[Team] = field(default_factory=list)


@dataclass(frozen=True)
class Candidate:
    """A ranked match candidate for one input fragment."""

    entity_type: str      # set, series, color, team, player
    entity_id: int
    name: str
    confidence: float     # 0.0 – 1.0
    match_type: str       # EXACT, NICKNAME, NAME_SWAP, ALIAS, BASE, SINGLE_NAME, FUZZY, PREFIX
    entity: object = field(default=None, compare=False, repr=False)


@dataclass
class MatchResult:
    """Exact and fuzzy candidates for one input fragment.

    Exact candidates always carry confidence 1.0 and are preferred over any
    fuzzy candidate. More than one exact candidate is an ambiguous match.
    """

    exact: list[Candidate] = field(default_factory=list)
    fuzzy: list[Candidate] = field(default_factory=list)

    @property
    def candidates(self) -> list[Candidate]:
        """Exact candidates if any, otherwise the ranked fuzzy list."""
        return self.exact if self.exact else self.fuzzy

    @property
    def found(self) -> bool:
        return bool(self.exact or self.fuzzy)

    @property
    def is_ambiguous(self) -> bool:
        return len(self.candidates) > 1

    @property
    def best(self) -> Optional[Candidate]:
        """The single unambiguous candidate, or None."""
        candidates = self.candidates
        if len(candidates) == 1:
            return candidates[0]
        return None


@dataclass
class ProvisionalCard:
    """An unresolved card description from a spreadsheet row or a submission."""

    card_number: str = ''
    player_names: str = ''
    team_names: str = ''
    year: Optional[int] = None
    set_name: str = ''
    series_name: str = ''
    color_name: str = ''
    is_rookie: bool = False
    is_autograph: bool = False
    is_relic: bool = False
    notes: str = ''
    sort_order: int = 0
    rc_indicator: str = ''


@dataclass(frozen=True)
class PlayerFieldEntry:
    """One player name of a card, paired with its positional team name."""

    player_name: str
    team_name: Optional[str]
    position: int
    team_guess: tuple[str, ...] = ()
    needs_review: bool = False


@dataclass
class PlayerResolution:
    """Resolution result for one PlayerFieldEntry."""

    entry: PlayerFieldEntry
    player_matches: MatchResult
    team_matches: MatchResult
    selected_player: Optional[Candidate] = None
    selected_teams: list[Candidate] = field(default_factory=list)
    player_team_ids: list[int] = field(default_factory=list)
    requires_new_player: bool = False
    requires_new_team: bool = False
    needs_review: bool = False

    @property
    def confidence(self) -> float:
        return self.selected_player.confidence if self.selected_player else 0.0


@dataclass
class ResolutionRecord:
    """Result of resolving one ProvisionalCard against the catalog."""

    card: ProvisionalCard
    set_matches: MatchResult
    series_matches: MatchResult
    color_matches: MatchResult
    card_set: Optional[Candidate] = None
    series: Optional[Candidate] = None
    color: Optional[Candidate] = None
    players: list[PlayerResolution] = field(default_factory=list)
    # All team names of the card, independent of the per-player team guess
    team_matches: dict[str, MatchResult] = field(default_factory=dict)
    requires_new_set: bool = False
    requires_new_series: bool = False
    requires_new_player: bool = False
    requires_new_team: bool = False
    fully_resolved: bool = False

    @property
    def needs_review(self) -> bool:
        return not self.fully_resolved or any(p.needs_review for p in self.players)
