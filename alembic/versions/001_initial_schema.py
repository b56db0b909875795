"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names, matching the SQLModel mapping
credential_type = sa.Enum(
    "API_KEY", "DATABASE", "OAUTH2", "BASIC_AUTH", "BEARER_TOKEN", "CUSTOM",
    name="credentialtype",
)
trigger_type = sa.Enum("MANUAL", "WEBHOOK", "SCHEDULE", name="triggertype")
execution_status = sa.Enum(
    "PENDING", "RUNNING", "COMPLETED", "FAILED", name="executionstatus"
)
step_status = sa.Enum("RUNNING", "COMPLETED", "FAILED", "SKIPPED", name="stepstatus")
log_level = sa.Enum("INFO", "WARN", "ERROR", name="loglevel")
job_status = sa.Enum("PENDING", "PROCESSING", "COMPLETED", "FAILED", name="jobstatus")
job_trigger_type = sa.Enum("WEBHOOK", "SCHEDULE", name="jobtriggertype")


def upgrade() -> None:
    # Create workflow table
    op.create_table(
        "workflow",
        sa.Column("id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("user_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("description", sqlmodel.sql.sqltypes.AutoString(length=2000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_workflow_user_id"), "workflow", ["user_id"], unique=False)

    # Create workflow_node table
    op.create_table(
        "workflow_node",
        sa.Column("workflow_id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("id", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column("type", sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column("position_x", sa.Float(), nullable=False),
        sa.Column("position_y", sa.Float(), nullable=False),
        sa.Column("data", sa.Text(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"]),
        sa.PrimaryKeyConstraint("workflow_id", "id"),
    )

    # Create workflow_connection table
    op.create_table(
        "workflow_connection",
        sa.Column("id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("workflow_id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("source_node_id", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column("target_node_id", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column("source_handle", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column("target_handle", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_workflow_connection_workflow_id"),
        "workflow_connection",
        ["workflow_id"],
        unique=False,
    )

    # Create credential table
    op.create_table(
        "credential",
        sa.Column("id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("user_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("type", credential_type, nullable=False),
        sa.Column("encrypted_data", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_credential_user_id"), "credential", ["user_id"], unique=False)

    # Create execution table
    op.create_table(
        "execution",
        sa.Column("id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("workflow_id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("triggered_by", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("trigger_type", trigger_type, nullable=False),
        sa.Column("status", execution_status, nullable=False),
        sa.Column("trigger_data", sa.Text(), nullable=True),
        sa.Column("output_data", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("steps_completed", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_execution_workflow_id"), "execution", ["workflow_id"], unique=False)
    op.create_index(op.f("ix_execution_triggered_by"), "execution", ["triggered_by"], unique=False)
    op.create_index(op.f("ix_execution_status"), "execution", ["status"], unique=False)

    # Create execution_step table
    op.create_table(
        "execution_step",
        sa.Column("id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("execution_id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("node_id", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column("node_type", sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("status", step_status, nullable=False),
        sa.Column("output", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["execution_id"], ["execution.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_execution_step_execution_id"), "execution_step", ["execution_id"], unique=False
    )

    # Create execution_log table
    op.create_table(
        "execution_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("execution_id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("node_id", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=True),
        sa.Column("level", log_level, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["execution_id"], ["execution.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_execution_log_execution_id"), "execution_log", ["execution_id"], unique=False
    )

    # Create execution_job table
    op.create_table(
        "execution_job",
        sa.Column("id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("workflow_id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("user_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("trigger_type", job_trigger_type, nullable=False),
        sa.Column("status", job_status, nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("webhook_data", sa.Text(), nullable=True),
        sa.Column("execution_id", sqlmodel.sql.sqltypes.AutoString(length=36), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_execution_job_workflow_id"), "execution_job", ["workflow_id"], unique=False
    )
    op.create_index(op.f("ix_execution_job_status"), "execution_job", ["status"], unique=False)
    op.create_index(
        "ix_execution_job_due",
        "execution_job",
        ["status", "scheduled_at", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_execution_job_due", table_name="execution_job")
    op.drop_index(op.f("ix_execution_job_status"), table_name="execution_job")
    op.drop_index(op.f("ix_execution_job_workflow_id"), table_name="execution_job")
    op.drop_table("execution_job")

    op.drop_index(op.f("ix_execution_log_execution_id"), table_name="execution_log")
    op.drop_table("execution_log")

    op.drop_index(op.f("ix_execution_step_execution_id"), table_name="execution_step")
    op.drop_table("execution_step")

    op.drop_index(op.f("ix_execution_status"), table_name="execution")
    op.drop_index(op.f("ix_execution_triggered_by"), table_name="execution")
    op.drop_index(op.f("ix_execution_workflow_id"), table_name="execution")
    op.drop_table("execution")

    op.drop_index(op.f("ix_credential_user_id"), table_name="credential")
    op.drop_table("credential")

    op.drop_index(op.f("ix_workflow_connection_workflow_id"), table_name="workflow_connection")
    op.drop_table("workflow_connection")

    op.drop_table("workflow_node")

    op.drop_index(op.f("ix_workflow_user_id"), table_name="workflow")
    op.drop_table("workflow")

    bind = op.get_bind()
    for enum_type in (
        job_trigger_type,
        job_status,
        log_level,
        step_status,
        execution_status,
        trigger_type,
        credential_type,
    ):
        enum_type.drop(bind, checkfirst=True)
