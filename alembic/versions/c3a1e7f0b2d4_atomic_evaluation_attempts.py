"""atomic evaluation attempt admission

Adds ``student_responses.attempt_number`` with a unique
``(evaluation_id, student_id, attempt_number)`` constraint and the
``submit_evaluation_response`` function, which re-checks the schedule and
the attempt count under a per-(evaluation, student) advisory lock before
inserting.

Revision ID: c3a1e7f0b2d4
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "c3a1e7f0b2d4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


_TABLE_NAME = "student_responses"
_CONSTRAINT = "uq_student_responses_attempt"


def _has_column(name: str) -> bool:
    inspector = sa.inspect(op.get_bind())
    return name in {c["name"] for c in inspector.get_columns(_TABLE_NAME)}


def _has_constraint() -> bool:
    inspector = sa.inspect(op.get_bind())
    return _CONSTRAINT in {c["name"] for c in inspector.get_unique_constraints(_TABLE_NAME)}


_SUBMIT_FUNCTION = """
CREATE OR REPLACE FUNCTION public.submit_evaluation_response(
    p_evaluation_id uuid,
    p_student_id uuid,
    p_answers jsonb,
    p_score numeric
) RETURNS public.student_responses
LANGUAGE plpgsql
AS $$
DECLARE
    v_eval public.evaluations%ROWTYPE;
    v_allowed integer;
    v_used integer;
    v_row public.student_responses%ROWTYPE;
BEGIN
    PERFORM pg_advisory_xact_lock(
        hashtextextended(p_evaluation_id::text || ':' || p_student_id::text, 0)
    );

    SELECT * INTO v_eval FROM public.evaluations WHERE id = p_evaluation_id;
    IF NOT FOUND THEN
        RAISE EXCEPTION 'EVALUATION_NOT_FOUND' USING ERRCODE = 'P0002';
    END IF;

    IF v_eval.start_at IS NOT NULL AND now() < v_eval.start_at THEN
        RAISE EXCEPTION 'NOT_YET_OPEN' USING ERRCODE = 'P0001';
    END IF;
    IF v_eval.due_at IS NOT NULL AND now() > v_eval.due_at THEN
        RAISE EXCEPTION 'EXPIRED' USING ERRCODE = 'P0001';
    END IF;

    v_allowed := GREATEST(COALESCE(v_eval.attempts_allowed, 1), 1);
    SELECT count(*) INTO v_used
      FROM public.student_responses
     WHERE evaluation_id = p_evaluation_id AND student_id = p_student_id;
    IF v_used >= v_allowed THEN
        RAISE EXCEPTION 'ATTEMPTS_EXHAUSTED' USING ERRCODE = 'P0001';
    END IF;

    INSERT INTO public.student_responses
        (evaluation_id, student_id, answers, score, completed_at, attempt_number)
    VALUES
        (p_evaluation_id, p_student_id, p_answers, p_score, now(), v_used + 1)
    RETURNING * INTO v_row;

    RETURN v_row;
END;
$$;
"""


def upgrade() -> None:
    if not _has_column("attempt_number"):
        op.add_column(_TABLE_NAME, sa.Column("attempt_number", sa.Integer(), nullable=True))
        op.execute(
            """
            UPDATE public.student_responses AS sr
               SET attempt_number = numbered.n
              FROM (
                    SELECT id,
                           row_number() OVER (
                               PARTITION BY evaluation_id, student_id
                               ORDER BY completed_at NULLS FIRST, id
                           ) AS n
                      FROM public.student_responses
                   ) AS numbered
             WHERE sr.id = numbered.id
            """
        )
    if not _has_constraint():
        op.create_unique_constraint(
            _CONSTRAINT, _TABLE_NAME, ["evaluation_id", "student_id", "attempt_number"]
        )
    op.execute(_SUBMIT_FUNCTION)
    op.execute(
        "GRANT EXECUTE ON FUNCTION public.submit_evaluation_response(uuid, uuid, jsonb, numeric) "
        "TO authenticated, service_role"
    )


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS public.submit_evaluation_response(uuid, uuid, jsonb, numeric)")
    if _has_constraint():
        op.drop_constraint(_CONSTRAINT, _TABLE_NAME, type_="unique")
    if _has_column("attempt_number"):
        op.drop_column(_TABLE_NAME, "attempt_number")
