"""
Services layer - business logic orchestration.

Sub-packages:
  chat_service     - chat request handling around the agent orchestrator
"""
