"""
Trivia Question Pipeline
generation/

Steps:
1. Prompt Builder - request parameters → strict-schema completion request
2. Continuation Cache - per-category conversation handle, capped by tokens consumed
3. GPT Client - Responses API call, fails closed on malformed output
4. Response Parser - completion output → Question rows (status=generated)
5. Question Generator - orchestrates 1-4, persists, records usage
6. Duplicate Detector - exact + semantic duplicate groups per category
7. Validator - fact-check and translation check
8. Usage Tracker - token and character audit logs
"""
