from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Type, TypeVar
from sqlalchemy.orm import Session
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from mealroute.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """
    Generic CRUD class for journey tables.

    Journey rows are addressed by a natural key rather than by their surrogate
    id, so besides get and bulk create this class provides an atomic
    ``upsert`` keyed on the model's unique constraint.

    Type Parameters:
        ModelType: SQLAlchemy model class
    """

    def __init__(self, model: Type[ModelType], key_columns: Sequence[str] = ()):
        """
        Initialize CRUD object with model class.

        Args:
            model: SQLAlchemy model class
            key_columns: Columns of the natural key (must match a unique constraint)
        """
        self.model = model
        self.key_columns = tuple(key_columns)

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        """
        Retrieve a single record by primary key.

        Args:
            db: Database session
            id: Record ID

        Returns:
            Model instance or None if not found
        """
        stmt = select(self.model).where(self.model.id == id)
        result = db.execute(stmt)
        return result.scalar_one_or_none()

    def get_by_key(self, db: Session, **key: Any) -> Optional[ModelType]:
        """
        Retrieve a single record by its natural key.

        Args:
            db: Database session
            **key: Natural key column values

        Returns:
            Model instance or None if not found
        """
        stmt = select(self.model).filter_by(**key)
        result = db.execute(stmt)
        return result.scalar_one_or_none()

    def create_multi(
        self,
        db: Session,
        *,
        objs_in: List[Dict[str, Any]],
        commit: bool = True
    ) -> List[ModelType]:
        """
        Create several records in one transaction.

        Args:
            db: Database session
            objs_in: Column values per record
            commit: Commit when done; otherwise only flush so the caller can
                add more writes to the same transaction

        Returns:
            Created model instances
        """
        db_objs = [self.model(**obj_in) for obj_in in objs_in]
        db.add_all(db_objs)
        if not commit:
            db.flush()
            return db_objs
        db.commit()
        for db_obj in db_objs:
            db.refresh(db_obj)
        return db_objs

    def upsert(
        self,
        db: Session,
        *,
        values: Dict[str, Any],
        build_set: Callable[[Any], Dict[str, Any]],
        commit: bool = True
    ) -> ModelType:
        """
        Insert a row or merge it into the existing row with the same natural key.

        The merge runs as a single ``INSERT ... ON CONFLICT DO UPDATE`` so
        concurrent writers for the same key serialize in the database.

        Args:
            db: Database session
            values: Full column values for the insert
            build_set: Called with the ``excluded`` pseudo-row, returns the
                SET clause used when the key already exists
            commit: Commit the merge; otherwise it stays in the open transaction

        Returns:
            The stored row after the merge
        """
        stmt = self._insert(db).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(self.key_columns),
            set_=build_set(stmt.excluded),
        )
        db.execute(stmt)
        if commit:
            db.commit()

        key = {column: values[column] for column in self.key_columns}
        # The row may already sit in the identity map with pre-merge values
        stmt = select(self.model).filter_by(**key).execution_options(populate_existing=True)
        return db.execute(stmt).scalar_one()

    def _insert(self, db: Session):
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(self.model)
        if dialect == "sqlite":
            return sqlite_insert(self.model)
        raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'")
