"""Multi-entity field parsing, player/team position disambiguation and row merging."""

import logging
import re
from dataclasses import replace
from typing import Optional

from cardmatch import PlayerFieldEntry, ProvisionalCard

log = logging.getLogger(__name__)

# '/', ',', '&', ';' or the word 'and' between two names
_SPLIT_RE = re.compile(r'\s*[/,&;]\s*|\s+and\s+', re.IGNORECASE)

MERGE_DELIMITER = '; '


def parse_multi_entity_field(raw: Optional[str]) -> list[str]:
    """Split a raw player or team field into its individual names.

    Args:
        raw: Field value such as 'Mike Trout / Aaron Judge'.

    Returns:
        Trimmed, non-empty names in left-to-right order.
    """
    if not raw:
        return []
    return [part.strip() for part in _SPLIT_RE.split(raw) if part and part.strip()]


def guess_player_teams(index: int, player_count: int, teams: list[str]) -> tuple[list[str], bool]:
    """Guess which team(s) a player on a multi-player card belongs to.

    The guess only decides which player-team associations are checked; the
    card itself always lists all of its teams.

    Rules, first match wins:
        1. As many players as teams: player i gets team i.
        2. A single team: every player gets it.
        3. The first player gets the first team.
        4. The last player, positioned past the last team, gets the last team.
        5. More players than teams: all teams, flagged for review.
        6. Otherwise player i gets team i.

    Args:
        index: Position of the player on the card (0-based).
        player_count: Number of players on the card.
        teams: Team names of the card in order.

    Returns:
        Tuple of (guessed team names, needs_review).
    """
    team_count = len(teams)
    if team_count == 0:
        return [], False
    if player_count == team_count:
        return [teams[index]], False
    if team_count == 1:
        return [teams[0]], False
    if index == 0:
        return [teams[0]], False
    if index == player_count - 1 and index >= team_count:
        return [teams[-1]], False
    if player_count > team_count:
        return list(teams), True
    return [teams[index]], False


def parse_player_entries(player_field: str, team_field: str) -> list[PlayerFieldEntry]:
    """Pair every player name of a card with its positional team name.

    Returns one entry per parsed player name, whether or not it resolves.
    """
    players = parse_multi_entity_field(player_field)
    teams = parse_multi_entity_field(team_field)

    entries = []
    for i, player_name in enumerate(players):
        if i < len(teams):
            team_name = teams[i]
        elif teams:
            team_name = teams[0]
        else:
            team_name = None
        guess, needs_review = guess_player_teams(i, len(players), teams)
        entries.append(PlayerFieldEntry(
            player_name=player_name,
            team_name=team_name,
            position=i,
            team_guess=tuple(guess),
            needs_review=needs_review,
        ))
    return entries


def _union_teams(existing: str, added: str) -> str:
    """Join two team fields, dropping case-insensitive duplicates."""
    teams: list[str] = []
    seen: set[str] = set()
    for team in parse_multi_entity_field(existing) + parse_multi_entity_field(added):
        key = team.casefold()
        if key not in seen:
            seen.add(key)
            teams.append(team)
    return MERGE_DELIMITER.join(teams)


def _merge_into(target: ProvisionalCard, row: ProvisionalCard) -> ProvisionalCard:
    players = MERGE_DELIMITER.join(p for p in (target.player_names, row.player_names) if p)

    notes = target.notes
    if row.notes and row.notes != target.notes:
        notes = MERGE_DELIMITER.join(n for n in (target.notes, row.notes) if n)

    return replace(
        target,
        player_names=players,
        team_names=_union_teams(target.team_names, row.team_names),
        is_rookie=target.is_rookie or row.is_rookie,
        notes=notes,
    )


def merge_duplicate_rows(rows: list[ProvisionalCard]) -> list[ProvisionalCard]:
    """Merge consecutive rows sharing a card number into multi-player cards.

    Rows must be passed in original file order. Only a row whose card number
    equals the immediately preceding row's number is merged; the same number
    appearing again later in the sheet starts a new card. Sort order is
    renumbered densely from 1. The input rows are not modified.

    Args:
        rows: Provisional cards in file order.

    Returns:
        New list of merged provisional cards.
    """
    merged: list[ProvisionalCard] = []
    for row in rows:
        if merged and merged[-1].card_number == row.card_number:
            merged[-1] = _merge_into(merged[-1], row)
        else:
            merged.append(replace(row))

    result = [replace(card, sort_order=i) for i, card in enumerate(merged, start=1)]
    if len(result) < len(rows):
        log.info("%d Zeilen zu %d Karten zusammengefuehrt", len(rows), len(result))
    return result
