"""Schema comparison.

``diff_schemas`` compares two normalized snapshots and returns the ordered
list of changes that would make the target match the source, each with its
migration statements pre-rendered for the target engine.
The comparison is pure logic -- no I/O, no database connections.

Matching rules:
- Table and column names use the looser of the two snapshots' name rules
  (``NameRule.looser``): a case-insensitive side cannot hold two names that
  differ only in case, so such names are the same object.
- Indexes are matched by definition (columns + uniqueness) and foreign keys
  by definition (columns + referenced table/columns + actions), not by name.
  Unmatched definitions sharing a name become ``*_modified`` items.
- Tables whose introspection failed on either side are skipped and listed
  in ``SchemaDiff.warnings``.

Usage:
    from db_reconcile.schema.comparator import diff_schemas

    diff = diff_schemas(source_snapshot, target_snapshot)
    if not diff.is_empty:
        print(diff.format_report())
"""

from dataclasses import dataclass, field

from db_reconcile.dialects import Engine, NameRule
from db_reconcile.schema import ddl
from db_reconcile.schema.models import (
    ColumnDef,
    DiffItem,
    DiffKind,
    ForeignKeyDef,
    IndexDef,
    MigrationStep,
    Phase,
    SchemaDiff,
    SchemaSnapshot,
    TableDef,
)

# Item kinds that force a SQLite table rebuild
_SQLITE_REBUILD_KINDS = {
    DiffKind.COLUMN_MODIFIED,
    DiffKind.COLUMN_REMOVED,
    DiffKind.FK_ADDED,
    DiffKind.FK_REMOVED,
    DiffKind.FK_MODIFIED,
}


@dataclass
class _Context:
    """Everything step rendering needs besides the item itself."""

    engine: Engine
    schema: str
    table_rule: NameRule
    column_rule: NameRule
    source_tables: dict[str, TableDef] = field(default_factory=dict)
    target_tables: dict[str, TableDef] = field(default_factory=dict)


# ============================================================================
# Snapshot diff
# ============================================================================


def diff_schemas(source: SchemaSnapshot, target: SchemaSnapshot) -> SchemaDiff:
    """Compare two snapshots.

    Items describe changes to the *target*: ``before`` is the target's
    current definition, ``after`` the source's.  Items are grouped by table:
    added tables first, then tables present on both sides, then removed
    tables, each group alphabetical.

    Args:
        source: Snapshot with the desired structure.
        target: Snapshot of the database to be migrated.

    Returns:
        ``SchemaDiff``; deterministic for the same two snapshots.

    Example:
        >>> diff = diff_schemas(snapshot, snapshot)
        >>> diff.is_empty
        True
    """
    ctx = _Context(
        engine=target.engine,
        schema=target.schema_name,
        table_rule=NameRule.looser(source.table_name_rule, target.table_name_rule),
        column_rule=NameRule.looser(source.column_name_rule, target.column_name_rule),
    )

    warnings = []
    excluded: set[str] = set()
    for side, snapshot in (("source", source), ("target", target)):
        for table in snapshot.failed_tables:
            excluded.add(ctx.table_rule.key(table.name))
            warnings.append(
                f"Table '{table.name}' excluded from comparison ({side}): {table.error}"
            )

    ctx.source_tables = {
        ctx.table_rule.key(t.name): t
        for t in source.tables
        if t.error is None and ctx.table_rule.key(t.name) not in excluded
    }
    ctx.target_tables = {
        ctx.table_rule.key(t.name): t
        for t in target.tables
        if t.error is None and ctx.table_rule.key(t.name) not in excluded
    }

    added = sorted(k for k in ctx.source_tables if k not in ctx.target_tables)
    common = sorted(k for k in ctx.source_tables if k in ctx.target_tables)
    removed = sorted(k for k in ctx.target_tables if k not in ctx.source_tables)

    raw_items: list[DiffItem] = []
    for key in added:
        table = ctx.source_tables[key]
        raw_items.append(DiffItem(kind=DiffKind.TABLE_ADDED, table=table.name, after=table))
    for key in common:
        raw_items.extend(_compare_table(ctx.source_tables[key], ctx.target_tables[key], ctx))
    for key in removed:
        table = ctx.target_tables[key]
        raw_items.append(DiffItem(kind=DiffKind.TABLE_REMOVED, table=table.name, before=table))

    items = _attach_steps(raw_items, ctx)

    return SchemaDiff(
        source_engine=source.engine,
        target_engine=target.engine,
        source_schema=source.schema_name,
        target_schema=target.schema_name,
        source_fingerprint=source.fingerprint,
        target_fingerprint=target.fingerprint,
        items=tuple(items),
        warnings=tuple(warnings),
    )


def _compare_table(src: TableDef, tgt: TableDef, ctx: _Context) -> list[DiffItem]:
    """Column, index, and foreign key items for a table on both sides."""
    rule = ctx.column_rule
    items: list[DiffItem] = []

    # Columns: added and modified in source order, then removed in target order
    for col in src.columns:
        existing = tgt.column(col.name, rule)
        if existing is None:
            items.append(
                DiffItem(kind=DiffKind.COLUMN_ADDED, table=tgt.name, name=col.name, after=col)
            )
        elif _column_changed(existing, col):
            items.append(
                DiffItem(
                    kind=DiffKind.COLUMN_MODIFIED,
                    table=tgt.name,
                    name=existing.name,
                    before=existing,
                    after=col,
                )
            )
    for col in tgt.columns:
        if src.column(col.name, rule) is None:
            items.append(
                DiffItem(kind=DiffKind.COLUMN_REMOVED, table=tgt.name, name=col.name, before=col)
            )

    items.extend(
        _match_by_definition(
            src.indexes,
            tgt.indexes,
            lambda idx: _index_signature(idx, rule),
            ctx.table_rule,
            tgt.name,
            (DiffKind.INDEX_ADDED, DiffKind.INDEX_REMOVED, DiffKind.INDEX_MODIFIED),
        )
    )
    items.extend(
        _match_by_definition(
            src.foreign_keys,
            tgt.foreign_keys,
            lambda fk: _fk_signature(fk, ctx),
            ctx.table_rule,
            tgt.name,
            (DiffKind.FK_ADDED, DiffKind.FK_REMOVED, DiffKind.FK_MODIFIED),
        )
    )
    return items


def _column_changed(before: ColumnDef, after: ColumnDef) -> bool:
    # Auto-increment is rendered differently per engine and not compared
    return (
        not before.data_type.same_as(after.data_type)
        or before.nullable != after.nullable
        or before.default != after.default
    )


def _index_signature(index: IndexDef, rule: NameRule) -> tuple:
    return tuple(rule.key(c) for c in index.columns), index.unique


def _fk_signature(fk: ForeignKeyDef, ctx: _Context) -> tuple:
    return (
        tuple(ctx.column_rule.key(c) for c in fk.columns),
        ctx.table_rule.key(fk.ref_table),
        tuple(ctx.column_rule.key(c) for c in fk.ref_columns),
        fk.on_delete,
        fk.on_update,
    )


def _match_by_definition(source_defs, target_defs, signature, name_rule, table, kinds) -> list[DiffItem]:
    """Added/removed/modified items for indexes or foreign keys."""
    added_kind, removed_kind, modified_kind = kinds

    unmatched_target = list(target_defs)
    unmatched_source = []
    for definition in source_defs:
        sig = signature(definition)
        match = next((t for t in unmatched_target if signature(t) == sig), None)
        if match is None:
            unmatched_source.append(definition)
        else:
            unmatched_target.remove(match)

    items = []
    for definition in unmatched_source:
        same_name = next(
            (t for t in unmatched_target if name_rule.key(t.name) == name_rule.key(definition.name)),
            None,
        )
        if same_name is not None:
            unmatched_target.remove(same_name)
            items.append(
                DiffItem(
                    kind=modified_kind,
                    table=table,
                    name=same_name.name,
                    before=same_name,
                    after=definition,
                )
            )
        else:
            items.append(DiffItem(kind=added_kind, table=table, name=definition.name, after=definition))
    for definition in unmatched_target:
        items.append(DiffItem(kind=removed_kind, table=table, name=definition.name, before=definition))
    return items


# ============================================================================
# Step rendering
# ============================================================================


def _attach_steps(items: list[DiffItem], ctx: _Context) -> list[DiffItem]:
    """Render each item's migration steps for the target engine."""
    if ctx.engine is Engine.SQLITE:
        rebuilds = _sqlite_rebuilds(items, ctx)
    else:
        rebuilds = {}

    # Objects already changed by their own item are not wrapped again
    changed = {
        (item.kind, ctx.table_rule.key(item.table), ctx.table_rule.key(item.name or ""))
        for item in items
    }

    result = []
    for item in items:
        rebuild = rebuilds.get(ctx.table_rule.key(item.table))
        if rebuild is not None and item.kind not in (DiffKind.TABLE_ADDED, DiffKind.TABLE_REMOVED):
            steps = (rebuild,)
        else:
            steps = tuple(_steps_for(item, ctx, changed))
        result.append(item.model_copy(update={"steps": steps}))
    return result


def _sqlite_rebuilds(items: list[DiffItem], ctx: _Context) -> dict[str, MigrationStep]:
    """One shared rebuild step per SQLite table that needs it."""
    needs_rebuild = set()
    for item in items:
        if item.kind in _SQLITE_REBUILD_KINDS:
            needs_rebuild.add(ctx.table_rule.key(item.table))
        elif item.kind is DiffKind.COLUMN_ADDED and not ddl.sqlite_can_add_column(item.after):
            needs_rebuild.add(ctx.table_rule.key(item.table))
        elif item.kind in (DiffKind.INDEX_REMOVED, DiffKind.INDEX_MODIFIED) and item.before.constraint:
            # UNIQUE constraint autoindexes cannot be dropped
            needs_rebuild.add(ctx.table_rule.key(item.table))

    rebuilds = {}
    for key in needs_rebuild:
        current = ctx.target_tables[key]
        desired = ctx.source_tables[key].model_copy(update={"name": current.name})
        rebuilds[key] = MigrationStep(
            phase=Phase.MODIFY_COLUMN,
            table=current.name,
            statements=tuple(ddl.rebuild_table(ctx.schema, current, desired, ctx.engine)),
        )
    return rebuilds


def _steps_for(item: DiffItem, ctx: _Context, changed: set) -> list[MigrationStep]:
    engine, schema, table = ctx.engine, ctx.schema, item.table

    def step(phase: Phase, statements: list[str], on: str = table) -> MigrationStep:
        return MigrationStep(phase=phase, table=on, statements=tuple(statements))

    kind = item.kind
    if kind is DiffKind.TABLE_ADDED:
        inline = engine is Engine.SQLITE
        steps = [step(Phase.CREATE_TABLE, ddl.create_table(schema, item.after, engine, inline_foreign_keys=inline))]
        if not inline:
            steps.extend(
                step(Phase.ADD_FK, ddl.add_foreign_key(schema, table, fk, engine))
                for fk in item.after.foreign_keys
            )
        return steps

    if kind is DiffKind.TABLE_REMOVED:
        steps = []
        if engine is not Engine.SQLITE:
            steps.extend(
                step(Phase.DROP_FK, ddl.drop_foreign_key(schema, table, fk, engine))
                for fk in item.before.foreign_keys
            )
        steps.append(step(Phase.DROP_TABLE, ddl.drop_table(schema, table, engine)))
        return steps

    if kind is DiffKind.COLUMN_ADDED:
        return [step(Phase.ADD_COLUMN, ddl.add_column(schema, table, item.after, engine))]

    if kind is DiffKind.COLUMN_REMOVED:
        return [step(Phase.DROP_COLUMN, ddl.drop_column(schema, table, item.before, engine))]

    if kind is DiffKind.COLUMN_MODIFIED:
        steps = [
            step(Phase.MODIFY_COLUMN, ddl.alter_column(schema, table, item.before, item.after, engine))
        ]
        if engine.is_mysql_family:
            steps = _mysql_dependents(item, ctx, changed) + steps
        return steps

    if kind is DiffKind.INDEX_ADDED:
        return [step(Phase.ADD_INDEX, ddl.create_index(schema, table, item.after, engine))]

    if kind is DiffKind.INDEX_REMOVED:
        return [step(Phase.DROP_INDEX, ddl.drop_index(schema, table, item.before, engine))]

    if kind is DiffKind.INDEX_MODIFIED:
        return [
            step(Phase.DROP_INDEX, ddl.drop_index(schema, table, item.before, engine)),
            step(Phase.ADD_INDEX, ddl.create_index(schema, table, item.after, engine)),
        ]

    if kind is DiffKind.FK_ADDED:
        return [step(Phase.ADD_FK, ddl.add_foreign_key(schema, table, item.after, engine))]

    if kind is DiffKind.FK_REMOVED:
        return [step(Phase.DROP_FK, ddl.drop_foreign_key(schema, table, item.before, engine))]

    # FK_MODIFIED
    return [
        step(Phase.DROP_FK, ddl.drop_foreign_key(schema, table, item.before, engine)),
        step(Phase.ADD_FK, ddl.add_foreign_key(schema, table, item.after, engine)),
    ]


def _mysql_dependents(item: DiffItem, ctx: _Context, changed: set) -> list[MigrationStep]:
    """Drop/recreate steps for indexes and foreign keys using a modified column.

    MySQL refuses ``MODIFY COLUMN`` on a column used by a foreign key (on
    either end) and rebuilds dependent indexes, so unchanged dependents are
    dropped before the change and recreated after it.
    """
    engine, schema = ctx.engine, ctx.schema
    table_key = ctx.table_rule.key(item.table)
    column_key = ctx.column_rule.key(item.name or "")
    tgt = ctx.target_tables[table_key]
    removed_tables = {k for k in ctx.target_tables if k not in ctx.source_tables}

    def untouched(kinds: tuple[DiffKind, ...], table: str, name: str) -> bool:
        key = (ctx.table_rule.key(table), ctx.table_rule.key(name))
        return not any((kind, *key) in changed for kind in kinds)

    steps = []
    for index in tgt.indexes:
        if column_key not in {ctx.column_rule.key(c) for c in index.columns}:
            continue
        if not untouched((DiffKind.INDEX_REMOVED, DiffKind.INDEX_MODIFIED), tgt.name, index.name):
            continue
        steps.append(MigrationStep(phase=Phase.DROP_INDEX, table=tgt.name,
                                   statements=tuple(ddl.drop_index(schema, tgt.name, index, engine))))
        steps.append(MigrationStep(phase=Phase.ADD_INDEX, table=tgt.name,
                                   statements=tuple(ddl.create_index(schema, tgt.name, index, engine))))

    for key, other in sorted(ctx.target_tables.items()):
        if key in removed_tables:
            continue
        for fk in other.foreign_keys:
            uses_column = key == table_key and column_key in {
                ctx.column_rule.key(c) for c in fk.columns
            }
            references_column = ctx.table_rule.key(fk.ref_table) == table_key and column_key in {
                ctx.column_rule.key(c) for c in fk.ref_columns
            }
            if not (uses_column or references_column):
                continue
            if not untouched((DiffKind.FK_REMOVED, DiffKind.FK_MODIFIED), other.name, fk.name):
                continue
            steps.append(MigrationStep(phase=Phase.DROP_FK, table=other.name,
                                       statements=tuple(ddl.drop_foreign_key(schema, other.name, fk, engine))))
            steps.append(MigrationStep(phase=Phase.ADD_FK, table=other.name,
                                       statements=tuple(ddl.add_foreign_key(schema, other.name, fk, engine))))
    return steps
