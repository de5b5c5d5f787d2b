"""
Store procedures installed on PostgreSQL.

insert_priest_location is the primary location write path. Databases
without it (older schemas, SQLite in tests) fall back to a direct insert.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

INSERT_PRIEST_LOCATION = """
CREATE OR REPLACE FUNCTION {name}(
    p_id varchar,
    p_priest_id varchar,
    p_booking_id varchar,
    p_latitude double precision,
    p_longitude double precision,
    p_heading double precision,
    p_speed double precision,
    p_accuracy double precision,
    p_recorded_at timestamptz
) RETURNS varchar AS $$
BEGIN
    INSERT INTO priest_locations (
        id, priest_id, booking_id, latitude, longitude,
        heading, speed, accuracy, created_at, updated_at
    ) VALUES (
        p_id, p_priest_id, p_booking_id, p_latitude, p_longitude,
        p_heading, p_speed, p_accuracy, p_recorded_at, p_recorded_at
    );
    RETURN p_id;
END;
$$ LANGUAGE plpgsql;
"""


async def install_procedures(conn: AsyncConnection, rpc_name: str) -> bool:
    """Create the location procedure. Returns False for dialects without plpgsql."""
    if conn.dialect.name != "postgresql":
        return False
    await conn.execute(text(INSERT_PRIEST_LOCATION.format(name=rpc_name)))
    return True
