from sqlalchemy import JSON, Integer
from sqlalchemy.dialects.postgresql import ARRAY

# PostgreSQL stores lineups as INTEGER[]; SQLite tests have no array type.
ELEMENT_ID_LIST_SQL_TYPE = ARRAY(Integer).with_variant(JSON(), "sqlite")
