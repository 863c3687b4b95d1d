"""Tests for the matcher command line interface."""

import csv
import sys

import pytest

import matcher
from cardmatch import ProvisionalCard
from cardmatch.scoring import DEFAULT_POLICY

CATALOG_FILES = {
    'teams.csv': 'team_id,name,city,mascot,abbreviation,organization_id\n'
                 '1,Los Angeles Angels,Los Angeles,Angels,LAA,1\n'
                 '2,New York Yankees,New York,Yankees,NYY,1\n',
    'players.csv': 'player_id,first_name,last_name\n1,Mike,Trout\n2,Aaron,Judge\n',
    'player_teams.csv': 'player_team_id,player_id,team_id\n100,1,1\n101,2,2\n',
    'sets.csv': 'set_id,name,year,organization_id\n1,Topps Chrome,2024,1\n',
    'series.csv': 'series_id,name,set_id,is_base\n10,Topps Chrome,1,true\n',
}


@pytest.fixture
def catalog_dir(tmp_path):
    directory = tmp_path / 'catalog'
    directory.mkdir()
    for name, content in CATALOG_FILES.items():
        (directory / name).write_text(content, encoding='utf-8')
    return directory


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, 'argv', ['matcher.py', *map(str, argv)])
    matcher.main()


class TestPolicyFromArgs:
    """Tests for threshold flags."""

    def test_defaults(self):
        args = matcher.build_parser().parse_args(['--catalog', 'x', '--set', 'Topps Chrome'])
        assert matcher.policy_from_args(args) == DEFAULT_POLICY

    def test_override(self):
        args = matcher.build_parser().parse_args([
            '--catalog', 'x', '--set', 'Topps Chrome',
            '--fuzzy-threshold', '0.9', '--max-edit-distance', '1',
        ])
        policy = matcher.policy_from_args(args)
        assert policy.fuzzy_similarity == 0.9
        assert policy.max_edit_distance == 1

    @pytest.mark.parametrize('flags', [
        ['--fuzzy-threshold', '1.5'],
        ['--team-threshold', '-0.1'],
        ['--max-edit-distance', '-1'],
    ])
    def test_out_of_range(self, flags):
        args = matcher.build_parser().parse_args(['--catalog', 'x', '--set', 'S', *flags])
        with pytest.raises(ValueError):
            matcher.policy_from_args(args)


class TestPrepareCards:
    """Tests for attaching the set context."""

    def test_context_attached(self):
        rows = [ProvisionalCard(card_number='1', player_names='Mike Trout', sort_order=1)]
        card, = matcher.prepare_cards(rows, 'Topps Chrome', 2024, 'Gold Refractors', 'Gold')
        assert card.set_name == 'Topps Chrome'
        assert card.year == 2024
        assert card.series_name == 'Gold Refractors'
        assert card.color_name == 'Gold'

    def test_duplicate_rows_merged(self):
        rows = [
            ProvisionalCard(card_number='7', player_names='Mike Trout', team_names='Angels', sort_order=1),
            ProvisionalCard(card_number='7', player_names='Aaron Judge', team_names='Yankees', sort_order=2),
        ]
        card, = matcher.prepare_cards(rows, 'Topps Chrome', 2024)
        assert card.player_names == 'Mike Trout; Aaron Judge'


class TestMain:
    """End-to-end runs of the CLI."""

    def test_single_checklist(self, monkeypatch, tmp_path, catalog_dir, capsys):
        cards = tmp_path / 'checklist.csv'
        cards.write_text('1,Mike Trout,Angels,RC,\n2,Aaron Judge,Yankees,,\n', encoding='utf-8')
        output = tmp_path / 'out' / 'report.csv'

        _run(monkeypatch, '--catalog', catalog_dir, '--cards', cards, '--output', output,
             '--set', 'Topps Chrome', '--year', '2024', '--organization', '1', '--html', '--summary')

        with open(output, encoding='utf-8-sig', newline='') as f:
            rows = list(csv.DictReader(f, delimiter=';'))
        assert [r['Player_ID'] for r in rows] == ['1', '2']
        assert all(r['Status'] == 'RESOLVED' for r in rows)
        assert output.with_suffix('.html').exists()
        assert 'Karten gesamt:' in capsys.readouterr().out

    def test_batch_mode(self, monkeypatch, tmp_path, catalog_dir):
        cards_dir = tmp_path / 'checklists'
        cards_dir.mkdir()
        (cards_dir / 'a.csv').write_text('1,Mike Trout,Angels\n', encoding='utf-8')
        (cards_dir / 'b.txt').write_text('2\tAaron Judge\tYankees\n', encoding='utf-8')
        output_dir = tmp_path / 'reports'

        _run(monkeypatch, '--catalog', catalog_dir, '--cards-dir', cards_dir,
             '--output-dir', output_dir, '--set', 'Topps Chrome', '--year', '2024')

        assert sorted(p.name for p in output_dir.iterdir()) == ['report_a.csv', 'report_b.csv']

    def test_requires_input(self, monkeypatch, catalog_dir):
        with pytest.raises(SystemExit):
            _run(monkeypatch, '--catalog', catalog_dir, '--set', 'Topps Chrome')

    def test_requires_output(self, monkeypatch, tmp_path, catalog_dir):
        with pytest.raises(SystemExit):
            _run(monkeypatch, '--catalog', catalog_dir, '--cards', tmp_path / 'c.csv',
                 '--set', 'Topps Chrome')

    def test_invalid_threshold(self, monkeypatch, tmp_path, catalog_dir):
        with pytest.raises(SystemExit):
            _run(monkeypatch, '--catalog', catalog_dir, '--cards', tmp_path / 'c.csv',
                 '--output', tmp_path / 'r.csv', '--set', 'Topps Chrome', '--fuzzy-threshold', '2')
