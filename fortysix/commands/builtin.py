"""Built-in chat commands."""

from __future__ import annotations

import time
from datetime import datetime

import psutil

from fortysix import __version__
from fortysix.commands.router import CommandContext, CommandRouter


def _flag(value: bool, on: str = "✅ Enabled", off: str = "❌ Disabled") -> str:
    return on if value else off


def _format_uptime(seconds: float) -> str:
    seconds = int(max(0, seconds))
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    parts = [f"{days}d"] if days else []
    if days or hours:
        parts.append(f"{hours}h")
    if days or hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


async def help_command(ctx: CommandContext) -> str:
    p = ctx.prefix
    ai = ctx.config.ai
    lines = [f"🤖 *{ctx.config.bot.name} Help*", "", "*Commands:*"]
    lines += [f"{p}{name} - {description}" for name, description in ctx.router.describe()]
    lines += [
        "",
        "*AI Queries:*",
        (
            f'Use prefix "{ai.query_prefix}" for AI queries'
            if ai.query_prefix_enabled
            else "Just send any message for an AI response"
        ),
        "",
        "*Settings:*",
        f"• AI in Groups: {_flag(ai.in_groups, '✅', '❌')}",
        f"• AI in DMs: {_flag(ai.in_direct, '✅', '❌')}",
        f"• Model: {ai.model}",
    ]
    return "\n".join(lines)


async def ping_command(ctx: CommandContext) -> str:
    sent_at = time.perf_counter()
    await ctx.reply("🏓 Pong!")
    elapsed_ms = (time.perf_counter() - sent_at) * 1000
    return f"⏱️ Round-trip: {elapsed_ms:.0f} ms"


async def clear_command(ctx: CommandContext) -> str:
    if ctx.sessions.clear(ctx.envelope.session_key):
        return "🗑️ Conversation history cleared!"
    return "ℹ️ No conversation history to clear."


async def config_command(ctx: CommandContext) -> str:
    ai = ctx.config.ai
    return "\n".join(
        [
            "⚙️ *Current Configuration*",
            "",
            "*Prefixes:*",
            f"• Commands: {ctx.prefix}",
            f"• Queries: {ai.query_prefix if ai.query_prefix_enabled else 'Not required'}",
            "",
            "*AI Settings:*",
            f"• Model: {ai.model}",
            f"• Groups: {_flag(ai.in_groups)}",
            f"• DMs: {_flag(ai.in_direct)}",
            f"• Self Only: {_flag(ai.self_only)}",
            f"• History: {ai.max_turns} exchanges",
        ]
    )


async def stats_command(ctx: CommandContext) -> str:
    lines = [
        "📊 *Bot Stats*",
        "",
        f"• Active sessions: {ctx.sessions.count()}",
        f"• Uptime: {_format_uptime((datetime.now() - ctx.started_at).total_seconds())}",
    ]
    try:
        rss_mb = psutil.Process().memory_info().rss / (1024 * 1024)
        lines.append(f"• Memory: {rss_mb:.1f} MB")
    except psutil.Error:
        pass
    return "\n".join(lines)


async def models_command(ctx: CommandContext) -> str:
    ai = ctx.config.ai
    listed = [f"{i}. {m}" for i, m in enumerate(ai.available_models, start=1)]
    return "🤖 *Available AI Models:*\n\n" + "\n".join(listed) + f"\n\n📌 Current: {ai.model}"


async def about_command(ctx: CommandContext) -> str:
    return "\n".join(
        [
            f"🤖 *{ctx.config.bot.name} Bot*",
            "",
            f"*Version:* {__version__}",
            f"*AI Model:* {ctx.config.ai.model}",
            "",
            "*Features:*",
            "✅ AI-powered conversations",
            "✅ Command system",
            "✅ Pairing code connection",
            "✅ Session management",
        ]
    )


async def session_command(ctx: CommandContext) -> str:
    store = ctx.credentials
    if not store.exists():
        return "🔐 *Session Status*\n\n❌ No saved session found"
    if store.load() is None:
        return "🔐 *Session Status*\n\n⚠️ Session file exists but unreadable"
    return "\n".join(
        [
            "🔐 *Session Status*",
            "",
            "✅ Session Active",
            f"📁 Location: {store.path}",
            f"🔑 ID: {store.session_label() or 'N/A'}",
            f"📱 Phone: {ctx.config.whatsapp.phone_number or 'N/A'}",
        ]
    )


def register_builtin_commands(router: CommandRouter) -> CommandRouter:
    router.register("help", help_command, "Show this help message")
    router.register("ping", ping_command, "Check if the bot is alive")
    router.register("clear", clear_command, "Clear your conversation history")
    router.register("config", config_command, "Show current configuration")
    router.register("stats", stats_command, "Show bot statistics")
    router.register("models", models_command, "List available AI models")
    router.register("about", about_command, "About this bot")
    router.register("session", session_command, "Show login session info")
    return router
