"""
Reasoning prompt scenarios.

Each scenario file defines:
- name: scenario identifier
- agent_name: persona name used in the prompt
- prompt: template rendered with {today}, {transcript}, {trip_state}, {knowledge}
- success_message / failure_message: booking outcome replies per language
"""
