"""Fixed answers used when the pipeline refuses to generate."""

NO_EVIDENCE_ANSWER = (
    "I couldn't find relevant information in the manual for this question. "
    "Try rephrasing it with the part name, connector label or error code shown on the machine."
)

WEAK_EVIDENCE_ANSWER = """I couldn't find enough reliable information in the manual to answer this confidently.

**General checks while you narrow it down:**
1) Check stored errors or LED codes and note them.
2) Confirm supply voltages (+5 V and +12 V) at the I/O board.
3) Exercise the actuator or sensor once while watching the inputs.
4) Reseat connectors and look for bent or oxidized pins.

The closest manual pages are listed in the sources."""
