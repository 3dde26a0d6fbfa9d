"""
Create the grading engine tables and optionally seed a demo catalog

Usage:
    python -m grading_engine.scripts.init_db
    python -m grading_engine.scripts.init_db --seed --database-url sqlite:///./demo.db
"""
import argparse
import logging

from ..database.config import get_db_session, init_database
from ..database.repositories import AssessmentRepository, HierarchyRepository, UserRepository

logger = logging.getLogger(__name__)

DEMO_RUBRIC = {
    "emerging": "Beginning to show the skill with support",
    "proficient": "Shows the skill independently in familiar tasks",
    "advanced": "Applies the skill consistently across tasks",
    "applying": "Transfers the skill to new, open-ended problems",
}


def seed_demo_data(db) -> None:
    """One outcome, two competencies, three skills, a teacher and two students"""
    hierarchy = HierarchyRepository(db)
    outcome = hierarchy.create_outcome("Effective Communicator", id="outcome-communication")
    writing = hierarchy.create_competency("Writing", learner_outcome_id=outcome.id, id="competency-writing")
    speaking = hierarchy.create_competency("Speaking", learner_outcome_id=outcome.id, id="competency-speaking")
    hierarchy.create_skill("Organizes ideas", competency_id=writing.id, rubric_levels=DEMO_RUBRIC, id="skill-organize")
    hierarchy.create_skill("Uses evidence", competency_id=writing.id, rubric_levels=DEMO_RUBRIC, id="skill-evidence")
    hierarchy.create_skill("Presents clearly", competency_id=speaking.id, rubric_levels=DEMO_RUBRIC, id="skill-present")

    users = UserRepository(db)
    teacher = users.create("demo_teacher", role="teacher", school_id="demo-school", id="teacher-1")
    users.create("demo_student_1", role="student", school_id="demo-school", grade_level="7", id="student-1")
    users.create("demo_student_2", role="student", school_id="demo-school", grade_level="7", id="student-2")

    AssessmentRepository(db).create(
        title="Persuasive essay",
        component_skill_ids=["skill-organize", "skill-evidence"],
        teacher_id=teacher.id,
        id="assessment-essay",
    )


def init_db(database_url=None, seed: bool = False) -> None:
    """Create all tables (and the demo catalog when ``seed``)"""
    init_database(database_url, create_tables=True)
    logger.info("Database tables created")
    if seed:
        with get_db_session() as db:
            seed_demo_data(db)
        logger.info("Demo data seeded")


def main() -> None:
    parser = argparse.ArgumentParser(description="Initialize the grading engine database")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    parser.add_argument("--seed", action="store_true", help="Insert a demo hierarchy, roster and assessment")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    init_db(args.database_url, seed=args.seed)


if __name__ == "__main__":
    main()
