"""Example: drive the service layer directly (no Flask), on the in-memory store."""

from sport_attendance.container import build_container
from sport_attendance.core.enums import Role
from sport_attendance.database.memory import InMemoryDatabase


def main():
    db = InMemoryDatabase()
    db.add_user(1, "Ivan", last_name="Petrov", role=Role.TEACHER)
    db.add_user(2, "Anna", last_name="Smirnova")
    db.add_section(1, "Football")
    db.assign_teacher(1, 1)

    container = build_container(storage_backend="memory", memory_db=db)
    portal = container.portal

    started = portal.start_session(teacher_id=1, section_id=1)
    print(started)
    print(portal.checkin(started["code"], student_id=2))
    print(portal.end_session(started["session_id"], actor_id=1, confirmed_student_ids=[2]))
    print(portal.get_progress(2))
    print(portal.audit_chain(2))


if __name__ == "__main__":
    main()
