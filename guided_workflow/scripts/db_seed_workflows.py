"""
Database Seeder.

Run this script to populate the PostgreSQL database with the
sample workflows defined in data/sample_workflows.py.

Usage:
    python -m guided_workflow.scripts.db_seed_workflows

This script uses a sync database connection since it runs as a CLI tool
outside of the async application context.
"""

from sqlmodel import Session, select

from guided_workflow.data.sample_workflows import SAMPLE_ALIASES, SAMPLE_WORKFLOWS
from guided_workflow.infrastructure.database.connection import get_engine, init_db
from guided_workflow.infrastructure.database.tables import (
    WorkflowAliasDBModel,
    WorkflowDBModel,
)


def seed_workflows():
    print("Initializing Database Connection...")

    init_db()

    with Session(get_engine()) as session:
        print(f"Found {len(SAMPLE_WORKFLOWS)} workflows to seed.")

        for wf_uid, workflow in SAMPLE_WORKFLOWS.items():
            print(f"Processing workflow: {workflow.name} ({wf_uid})")

            # Store the document body under its authored field names.
            definition = workflow.model_dump(
                mode="json", by_alias=True, exclude={"name", "uid"}
            )

            # Upsert logic: update existing records or insert new ones.
            existing_wf = session.get(WorkflowDBModel, wf_uid)

            if existing_wf:
                print("--> Updating existing record.")
                existing_wf.name = workflow.name
                existing_wf.definition = definition
                existing_wf.version += 1
                session.add(existing_wf)
            else:
                print("--> Creating new record.")
                session.add(
                    WorkflowDBModel(
                        workflow_uid=wf_uid,
                        name=workflow.name,
                        definition=definition,
                        last_updated_by=workflow.last_updated_by,
                    )
                )

        for alias_text, workflow_name in SAMPLE_ALIASES.items():
            statement = select(WorkflowAliasDBModel).where(
                WorkflowAliasDBModel.alias_text == alias_text
            )
            existing_alias = session.exec(statement).first()
            if existing_alias:
                existing_alias.workflow_name = workflow_name
                session.add(existing_alias)
            else:
                session.add(
                    WorkflowAliasDBModel(alias_text=alias_text, workflow_name=workflow_name)
                )

        session.commit()
        print("Workflows seeding complete.")


if __name__ == "__main__":
    seed_workflows()
