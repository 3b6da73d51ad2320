"""Workflow runtime data table and its server-side procedures.

- workflow_runtime_data
- jsonb_deep_merge_with_options(jsonb, jsonb, text)
- search_workflow_data(...)

jsonb_deep_merge_with_options must stay behaviourally identical to
workflow_store.core.json_merge.deep_merge.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3c1d9e7a5b20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


JSONB_DEEP_MERGE_WITH_OPTIONS = """
CREATE OR REPLACE FUNCTION jsonb_deep_merge_with_options(
    stored jsonb,
    patch jsonb,
    merge_option text DEFAULT 'by_id'
)
RETURNS jsonb
LANGUAGE plpgsql
IMMUTABLE
AS $$
DECLARE
    merged jsonb;
    patch_key text;
    patch_value jsonb;
    element jsonb;
    match_index integer;
    idx integer;
    stored_length integer;
    patch_length integer;
BEGIN
    IF merge_option IS NULL OR merge_option NOT IN ('by_id', 'by_index', 'concat', 'replace') THEN
        RAISE EXCEPTION 'unsupported array merge option: %', merge_option USING ERRCODE = '22023';
    END IF;

    IF patch IS NULL OR jsonb_typeof(patch) = 'null' THEN
        RETURN stored;
    END IF;

    IF jsonb_typeof(patch) = 'object' THEN
        IF stored IS NULL OR jsonb_typeof(stored) <> 'object' THEN
            merged := '{}'::jsonb;
        ELSE
            merged := stored;
        END IF;
        FOR patch_key, patch_value IN SELECT key, value FROM jsonb_each(patch) LOOP
            IF jsonb_typeof(patch_value) = 'null' THEN
                merged := merged - patch_key;
            ELSE
                merged := merged || jsonb_build_object(
                    patch_key,
                    jsonb_deep_merge_with_options(merged -> patch_key, patch_value, merge_option)
                );
            END IF;
        END LOOP;
        RETURN merged;
    END IF;

    IF jsonb_typeof(patch) = 'array' AND stored IS NOT NULL AND jsonb_typeof(stored) = 'array' THEN
        IF merge_option = 'replace' THEN
            RETURN patch;
        ELSIF merge_option = 'concat' THEN
            RETURN stored || patch;
        ELSIF merge_option = 'by_index' THEN
            merged := '[]'::jsonb;
            stored_length := jsonb_array_length(stored);
            patch_length := jsonb_array_length(patch);
            FOR idx IN 0 .. greatest(stored_length, patch_length) - 1 LOOP
                IF idx >= patch_length THEN
                    merged := merged || jsonb_build_array(stored -> idx);
                ELSIF idx >= stored_length THEN
                    merged := merged || jsonb_build_array(patch -> idx);
                ELSIF jsonb_typeof(patch -> idx) = 'null' THEN
                    merged := merged || jsonb_build_array(stored -> idx);
                ELSE
                    merged := merged || jsonb_build_array(
                        jsonb_deep_merge_with_options(stored -> idx, patch -> idx, merge_option)
                    );
                END IF;
            END LOOP;
            RETURN merged;
        END IF;

        -- by_id
        merged := stored;
        FOR element IN SELECT value FROM jsonb_array_elements(patch) LOOP
            match_index := NULL;
            IF jsonb_typeof(element) = 'object'
               AND coalesce(jsonb_typeof(element -> 'id'), 'null') <> 'null' THEN
                SELECT t.ordinality - 1 INTO match_index
                FROM jsonb_array_elements(merged) WITH ORDINALITY AS t(value, ordinality)
                WHERE jsonb_typeof(t.value) = 'object' AND t.value -> 'id' = element -> 'id'
                ORDER BY t.ordinality
                LIMIT 1;
            END IF;
            IF match_index IS NULL THEN
                merged := merged || jsonb_build_array(element);
            ELSE
                merged := jsonb_set(
                    merged,
                    ARRAY[match_index::text],
                    jsonb_deep_merge_with_options(merged -> match_index, element, merge_option)
                );
            END IF;
        END LOOP;
        RETURN merged;
    END IF;

    RETURN patch;
END;
$$;
"""


SEARCH_WORKFLOW_DATA = """
CREATE OR REPLACE FUNCTION search_workflow_data(
    search_text text,
    entity_type text,
    order_column text,
    order_direction text,
    workflow_definition_ids text[],
    statuses text[],
    project_ids text[],
    assignee_ids text[],
    case_statuses text[],
    include_unassigned boolean
)
RETURNS TABLE (id text)
LANGUAGE plpgsql
STABLE
AS $$
DECLARE
    sort_column text;
    sort_direction text;
    search_pattern text;
BEGIN
    sort_column := CASE order_column
        WHEN 'created_at' THEN 'created_at'
        WHEN 'createdAt' THEN 'created_at'
        WHEN 'updated_at' THEN 'updated_at'
        WHEN 'updatedAt' THEN 'updated_at'
        WHEN 'status' THEN 'status'
        WHEN 'assignee_id' THEN 'assignee_id'
        WHEN 'assigneeId' THEN 'assignee_id'
        WHEN 'workflow_definition_id' THEN 'workflow_definition_id'
        WHEN 'workflowDefinitionId' THEN 'workflow_definition_id'
    END;
    IF sort_column IS NULL THEN
        RAISE EXCEPTION 'unsupported order column: %', order_column USING ERRCODE = '22023';
    END IF;

    sort_direction := CASE lower(coalesce(nullif(order_direction, ''), 'desc'))
        WHEN 'asc' THEN 'ASC'
        WHEN 'desc' THEN 'DESC'
    END;
    IF sort_direction IS NULL THEN
        RAISE EXCEPTION 'unsupported order direction: %', order_direction USING ERRCODE = '22023';
    END IF;

    IF entity_type IS NULL OR entity_type NOT IN ('business', 'end_user') THEN
        RAISE EXCEPTION 'unsupported entity type: %', entity_type USING ERRCODE = '22023';
    END IF;

    search_pattern := '%' || coalesce(search_text, '') || '%';

    RETURN QUERY EXECUTE format(
        $query$
        SELECT wrd.id
        FROM workflow_runtime_data AS wrd
        WHERE wrd.project_id = ANY($1)
          AND (
                ($2 = 'business' AND wrd.business_id IS NOT NULL)
             OR ($2 = 'end_user' AND wrd.end_user_id IS NOT NULL)
          )
          AND (cardinality($3) = 0 OR wrd.workflow_definition_id = ANY($3))
          AND (cardinality($4) = 0 OR wrd.status = ANY($4))
          AND (cardinality($5) = 0 OR wrd.tags ?| $5)
          AND (
                (cardinality($6) = 0 AND NOT $7)
             OR wrd.assignee_id = ANY($6)
             OR ($7 AND wrd.assignee_id IS NULL)
          )
          AND (
                coalesce($8, '') = ''
             OR wrd.id ILIKE $9
             OR wrd.workflow_definition_id ILIKE $9
             OR wrd.business_id ILIKE $9
             OR wrd.end_user_id ILIKE $9
             OR to_tsvector('simple', wrd.context) @@ plainto_tsquery('simple', $8)
          )
        ORDER BY wrd.%I %s NULLS LAST, wrd.id
        $query$,
        sort_column,
        sort_direction
    )
    USING project_ids, entity_type, workflow_definition_ids, statuses, case_statuses,
          assignee_ids, include_unassigned, search_text, search_pattern;
END;
$$;
"""


def upgrade() -> None:
    op.create_table(
        "workflow_runtime_data",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("project_id", sa.Text(), nullable=False),
        sa.Column("workflow_definition_id", sa.Text(), nullable=False),
        sa.Column("workflow_definition_version", sa.Integer(), nullable=True),
        sa.Column("status", sa.Text(), server_default=sa.text("'active'"), nullable=False),
        sa.Column("business_id", sa.Text(), nullable=True),
        sa.Column("end_user_id", sa.Text(), nullable=True),
        sa.Column("assignee_id", sa.Text(), nullable=True),
        sa.Column("context", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("config", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=True),
        sa.Column("tags", postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_runtime_data"),
        sa.CheckConstraint("project_id <> ''", name="ck_workflow_runtime_data_project_id_not_empty"),
        sa.CheckConstraint(
            "NOT (business_id IS NOT NULL AND end_user_id IS NOT NULL)",
            name="ck_workflow_runtime_data_single_entity",
        ),
        sa.CheckConstraint(
            "status IN ('active', 'completed', 'failed')",
            name="ck_workflow_runtime_data_status_valid",
        ),
    )
    op.create_index("ix_workflow_runtime_data_project_id", "workflow_runtime_data", ["project_id"])
    op.create_index("ix_workflow_runtime_data_business_id", "workflow_runtime_data", ["business_id"])
    op.create_index("ix_workflow_runtime_data_end_user_id", "workflow_runtime_data", ["end_user_id"])
    op.create_index("ix_workflow_runtime_data_assignee_id", "workflow_runtime_data", ["assignee_id"])
    op.create_index(
        "ix_workflow_runtime_data_definition_business_created",
        "workflow_runtime_data",
        ["workflow_definition_id", "business_id", "created_at"],
    )
    op.create_index(
        "ix_workflow_runtime_data_project_status",
        "workflow_runtime_data",
        ["project_id", "status"],
    )
    op.create_index(
        "ix_workflow_runtime_data_tags",
        "workflow_runtime_data",
        ["tags"],
        postgresql_using="gin",
    )

    op.execute(JSONB_DEEP_MERGE_WITH_OPTIONS)
    op.execute(SEARCH_WORKFLOW_DATA)


def downgrade() -> None:
    op.execute(
        "DROP FUNCTION IF EXISTS search_workflow_data("
        "text, text, text, text, text[], text[], text[], text[], text[], boolean);"
    )
    op.execute("DROP FUNCTION IF EXISTS jsonb_deep_merge_with_options(jsonb, jsonb, text);")
    op.drop_table("workflow_runtime_data")
