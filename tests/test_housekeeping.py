"""Manutenzione delle serie: rimozione, migrazione e riparazione del flag."""

from datetime import date, time, timedelta

import models
from conftest import TODAY, make_appointment
from housekeeping import debug_recurrences, fix_recurring_flag, migrate_recurring, remove_recurrences


def _weekly(db, employee_id, start, n, **kwargs):
    return [make_appointment(db, employee_id, start + timedelta(days=7 * i), **kwargs) for i in range(n)]


class TestRemoveRecurrences:
    def test_keeps_first_of_each_series(self, db, employee):
        _weekly(db, employee.id, date(2024, 3, 1), 4, recurrence_group_id="recur_a", is_recurring=True)
        make_appointment(db, employee.id, date(2024, 3, 2), client_name="Singolo", is_recurring=True)

        results = remove_recurrences(db)

        assert results["summary"] == {"kept": 1, "deleted": 3, "updated": 2, "totalGroups": 2}
        assert results["kept"][0]["date"] == "2024-03-01"
        assert results["kept"][0]["time"] == "10:00"
        assert results["errors"] == []
        rimasti = db.query(models.Appointment).order_by(models.Appointment.date).all()
        assert len(rimasti) == 2
        assert all(r.recurrence_group_id is None and not r.is_recurring for r in rimasti)

    def test_unknown_group_prefix_only_clears_flag(self, db, employee):
        _weekly(db, employee.id, date(2024, 3, 1), 3, recurrence_group_id="altro_gruppo", is_recurring=True)
        results = remove_recurrences(db)
        assert results["summary"]["deleted"] == 0
        assert results["summary"]["updated"] == 3
        assert db.query(models.Appointment).filter(models.Appointment.recurrence_group_id.isnot(None)).count() == 0

    def test_nothing_to_do(self, db, employee):
        make_appointment(db, employee.id, TODAY)
        assert remove_recurrences(db)["summary"]["totalGroups"] == 0


class TestMigrateRecurring:
    def test_assigns_migrated_groups(self, db, employee):
        _weekly(db, employee.id, date(2024, 1, 1), 5)
        _weekly(db, employee.id, date(2024, 1, 1), 3, client_name="Anna Bianchi", start_time=time(11, 0))
        # Anna viene ogni due settimane
        for i in range(3):
            make_appointment(
                db, employee.id, date(2024, 2, 1) + timedelta(days=14 * i), client_name="Anna Bianchi", start_time=time(15, 0)
            )

        results = migrate_recurring(db)

        assert results["updated"] == 8
        assert len(results["series"]) == 2
        assert len(results["rejected"]) == 1
        assert results["rejected"][0]["gaps"] == [14, 14]
        gruppi = {s["group_id"] for s in results["series"]}
        assert all(g.startswith("migrated_") for g in gruppi)
        mario = db.query(models.Appointment).filter(models.Appointment.client_name == "Mario Rossi").all()
        assert len({a.recurrence_group_id for a in mario}) == 1
        assert all(a.is_recurring for a in mario)

    def test_existing_groups_are_skipped(self, db, employee):
        _weekly(db, employee.id, date(2024, 1, 1), 3, recurrence_group_id="recur_x", is_recurring=True)
        results = migrate_recurring(db)
        assert results["updated"] == 0
        assert len(results["skipped"]) == 1


class TestFixRecurringFlag:
    def test_sets_flag_on_grouped_rows(self, db, employee):
        _weekly(db, employee.id, date(2024, 3, 1), 2, recurrence_group_id="recur_y", is_recurring=False)
        make_appointment(db, employee.id, date(2024, 3, 3))
        aggiornati = fix_recurring_flag(db)
        assert len(aggiornati) == 2
        assert db.query(models.Appointment).filter(models.Appointment.is_recurring.is_(True)).count() == 2


class TestDebugRecurrences:
    def test_report(self, db, employee):
        _weekly(db, employee.id, date(2024, 2, 2), 2, recurrence_group_id="recur_z", is_recurring=True)
        _weekly(db, employee.id, date(2024, 2, 3), 3, client_name="Luigi Verdi", start_time=time(9, 0))
        dati = debug_recurrences(db, TODAY)
        assert dati["totalAppointments"] == 5
        assert dati["recurringAppointments"] == 2
        assert dati["groups"] == 1
        assert "recur_z" in dati["groupsDetail"]
        luigi = [p for p in dati["potentialRecurrences"] if p["client"] == "Luigi Verdi"][0]
        assert luigi["count"] == 3
        assert luigi["time"] == "09:00"
