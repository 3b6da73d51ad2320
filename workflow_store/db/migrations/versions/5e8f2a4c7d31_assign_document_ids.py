"""Document id assignment procedure.

- jsonb_assign_document_ids(jsonb)

Used by context merges so every element of ``documents`` carries an id after
the merge, whatever the array merge option. Must stay behaviourally identical
to workflow_store.core.documents.with_document_ids. gen_random_uuid() is
built in from PostgreSQL 13.
"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5e8f2a4c7d31"
down_revision: Union[str, None] = "3c1d9e7a5b20"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


JSONB_ASSIGN_DOCUMENT_IDS = """
CREATE OR REPLACE FUNCTION jsonb_assign_document_ids(doc jsonb)
RETURNS jsonb
LANGUAGE sql
VOLATILE
AS $$
SELECT CASE
    WHEN doc IS NULL OR jsonb_typeof(doc) <> 'object' THEN doc
    WHEN coalesce(jsonb_typeof(doc -> 'documents'), 'null') = 'null'
        THEN jsonb_set(doc, '{documents}', '[]'::jsonb, true)
    WHEN jsonb_typeof(doc -> 'documents') <> 'array' THEN doc
    ELSE jsonb_set(
        doc,
        '{documents}',
        coalesce(
            (
                SELECT jsonb_agg(
                    CASE
                        WHEN jsonb_typeof(t.element) = 'object'
                             AND coalesce(t.element ->> 'id', '') = ''
                            THEN t.element || jsonb_build_object('id', gen_random_uuid()::text)
                        ELSE t.element
                    END
                    ORDER BY t.ordinality
                )
                FROM jsonb_array_elements(doc -> 'documents') WITH ORDINALITY AS t(element, ordinality)
            ),
            '[]'::jsonb
        ),
        true
    )
END
$$;
"""


def upgrade() -> None:
    op.execute(JSONB_ASSIGN_DOCUMENT_IDS)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS jsonb_assign_document_ids(jsonb);")
