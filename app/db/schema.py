from __future__ import annotations


def ensure_schema(conn) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS raffles (
            id uuid PRIMARY KEY,
            title text NOT NULL,
            total_numbers int NOT NULL CHECK (total_numbers > 0),
            enabled boolean NOT NULL DEFAULT true,
            deleted boolean NOT NULL DEFAULT false,
            created_by text NOT NULL,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_by text NOT NULL,
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS raffle_numbers (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            raffle_id uuid NOT NULL REFERENCES raffles(id),
            number int NOT NULL CHECK (number > 0),
            status text NOT NULL DEFAULT 'available'
                CHECK (status IN ('available', 'held', 'sold')),
            holder_id text,
            hold_expires_at timestamptz,
            ticket_id text,
            enabled boolean NOT NULL DEFAULT true,
            deleted boolean NOT NULL DEFAULT false,
            created_by text NOT NULL,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_by text NOT NULL,
            updated_by_kind text NOT NULL DEFAULT 'system',
            updated_at timestamptz NOT NULL DEFAULT now(),
            UNIQUE (raffle_id, number),
            CHECK (
                (status = 'available' AND holder_id IS NULL
                    AND hold_expires_at IS NULL AND ticket_id IS NULL)
                OR (status = 'held' AND holder_id IS NOT NULL
                    AND hold_expires_at IS NOT NULL AND ticket_id IS NULL)
                OR (status = 'sold' AND ticket_id IS NOT NULL)
            )
        );
        """
    )
    cur.execute(
        """
        CREATE INDEX IF NOT EXISTS raffle_numbers_status_idx
        ON raffle_numbers (raffle_id, status, number);
        """
    )
    cur.execute(
        """
        CREATE INDEX IF NOT EXISTS raffle_numbers_hold_expiry_idx
        ON raffle_numbers (hold_expires_at)
        WHERE status = 'held';
        """
    )
    cur.execute(
        """
        CREATE INDEX IF NOT EXISTS raffle_numbers_holder_idx
        ON raffle_numbers (raffle_id, holder_id)
        WHERE status = 'held';
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS raffle_number_events (
            id bigserial PRIMARY KEY,
            raffle_id uuid NOT NULL REFERENCES raffles(id),
            number int NOT NULL,
            action text NOT NULL,
            from_status text NOT NULL,
            to_status text NOT NULL,
            actor_id text NOT NULL,
            actor_kind text NOT NULL,
            previous_holder_id text,
            ticket_id text,
            reason text,
            source_event_id text,
            created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    cur.execute(
        """
        CREATE INDEX IF NOT EXISTS raffle_number_events_raffle_idx
        ON raffle_number_events (raffle_id, number, created_at);
        """
    )
    conn.commit()
    cur.close()
