"""Riconoscimento delle serie settimanali su appuntamenti grezzi."""

from datetime import date, timedelta

from recurrence import (
    classify_group,
    day_gaps,
    detect_series,
    gaps_look_weekly,
    group_candidates,
    group_key,
    is_weekly_series,
)


def _row(giorno, client="Mario Rossi", employee_id=1, start="10:00", service="Taglio"):
    return {
        "client_name": client,
        "employee_id": employee_id,
        "start_time": start,
        "service_type": service,
        "date": giorno,
    }


def _weekly(start, n, **kwargs):
    return [_row(start + timedelta(days=7 * i), **kwargs) for i in range(n)]


class TestGaps:
    def test_gaps_are_sorted_and_deduplicated(self):
        assert day_gaps(["2024-03-15", "2024-03-01", "2024-03-08", "2024-03-08"]) == [7, 7]

    def test_timestamp_suffix_is_ignored(self):
        assert day_gaps(["2024-03-01T00:00:00.000Z", "2024-03-08 09:30"]) == [7]

    def test_unparseable_date_returns_none(self):
        assert day_gaps(["2024-03-01", "non-una-data"]) is None

    def test_no_gaps_is_not_weekly(self):
        assert gaps_look_weekly([]) is False

    def test_single_gap_only_needs_range(self):
        assert gaps_look_weekly([5]) is True
        assert gaps_look_weekly([9]) is True
        assert gaps_look_weekly([4]) is False
        assert gaps_look_weekly([10]) is False

    def test_gap_out_of_range_rejects_series(self):
        assert gaps_look_weekly([7, 7, 7, 7, 10]) is False

    def test_weekly_ratio_below_threshold(self):
        # 3 intervalli su 4 tra 6 e 8 giorni: 75%
        assert gaps_look_weekly([7, 7, 7, 5]) is False

    def test_weekly_ratio_at_threshold(self):
        # 4 su 5: esattamente 80%
        assert gaps_look_weekly([7, 7, 7, 7, 5]) is True


class TestGrouping:
    def test_key_uses_tuple_fields(self):
        a = _row("2024-03-01", client="Rossi|1", employee_id=2)
        b = _row("2024-03-01", client="Rossi", employee_id="1|2")
        assert len(group_candidates([a, b])) == 2

    def test_seconds_in_start_time_do_not_split_group(self):
        gruppi = group_candidates([_row("2024-03-01", start="10:00"), _row("2024-03-08", start="10:00:00")])
        assert len(gruppi) == 1

    def test_service_only_counts_when_requested(self):
        righe = [_row("2024-03-01", service="Taglio"), _row("2024-03-08", service="Barba")]
        assert len(group_candidates(righe)) == 1
        assert len(group_candidates(righe, include_service=True)) == 2
        assert group_key(righe[0]).service_type is None


class TestDetectSeries:
    def test_weekly_client_is_recognised(self):
        candidati = detect_series(_weekly(date(2024, 1, 1), 6))
        assert len(candidati) == 1
        assert candidati[0].is_recurring
        assert candidati[0].gaps == [7] * 5

    def test_fortnightly_client_is_rejected(self):
        righe = [_row(date(2024, 1, 1) + timedelta(days=14 * i), client="Anna Bianchi") for i in range(4)]
        candidati = detect_series(righe)
        assert len(candidati) == 1
        assert candidati[0].is_recurring is False
        assert candidati[0].gaps == [14, 14, 14]

    def test_one_fortnight_gap_rejects_series(self):
        righe = [_row(g, client="Anna Bianchi") for g in ("2024-02-01", "2024-02-08", "2024-02-22")]
        candidato = detect_series(righe)[0]
        assert candidato.gaps == [7, 14]
        assert candidato.is_recurring is False

    def test_single_appointment_is_never_evaluated(self):
        assert detect_series([_row("2024-03-01")]) == []

    def test_same_day_duplicates_keep_first(self):
        primo = _row("2024-03-01")
        doppio = _row("2024-03-01")
        candidato = classify_group(group_key(primo), [primo, doppio, _row("2024-03-08"), _row("2024-03-15")])
        assert candidato.is_recurring
        assert len(candidato.members) == 3
        assert candidato.members[0] is primo
        assert candidato.duplicates == [doppio]

    def test_only_duplicates_is_not_a_series(self):
        righe = [_row("2024-03-01"), _row("2024-03-01")]
        candidato = detect_series(righe)[0]
        assert candidato.is_recurring is False
        assert len(candidato.members) == 1

    def test_unparseable_date_rejects_group_without_raising(self):
        righe = [_row("2024-03-01"), _row("boh"), _row("2024-03-15")]
        candidato = detect_series(righe)[0]
        assert candidato.is_recurring is False

    def test_other_groups_still_evaluated(self):
        righe = [_row("boh", client="Errore"), _row("2024-03-01", client="Errore")]
        righe += _weekly(date(2024, 3, 1), 3, client="Luigi Verdi")
        esiti = {c.key.client_name: c.is_recurring for c in detect_series(righe)}
        assert esiti == {"Errore": False, "Luigi Verdi": True}

    def test_is_weekly_series_helper(self):
        assert is_weekly_series(["2024-03-01", "2024-03-08"])
        assert not is_weekly_series(["2024-03-01", "2024-03-15"])
        assert not is_weekly_series(["2024-03-01", None])
