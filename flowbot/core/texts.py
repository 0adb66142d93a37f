# flowbot/core/texts.py
"""
User-facing strings (pt-BR).

``get_text(key, **fmt)`` resolves a key at call time and applies
``str.format`` with the given fields.
"""
from __future__ import annotations

TEXTS: dict[str, str] = {
    # Router notices
    "unknown_command": "Comando desconhecido. Digite {prefix}ajuda para ver os comandos disponíveis.",
    "command_failed": "❌ Erro ao executar o comando: {error}",
    "step_failed": "Desculpe, ocorreu um erro ao processar sua mensagem. Tente novamente.",

    # Access control
    "owner_only": "❌ Apenas o dono do bot pode usar este comando.",

    # Basic commands
    "pong": "Pong! 🏓",
    "greeting": "Olá! Eu sou o {bot_name}. Como posso ajudar você hoje?",
    "current_time": "A hora atual é: {time}",
    "current_date": "Hoje é: {date}",
    "echo_missing": "Por favor, forneça um texto para eu repetir.",

    # Admin: plugins
    "no_plugins": "❌ Nenhum plugin carregado.",

    # Admin: state management
    "states_help": (
        "🔄 *Gerenciamento de Estados*\n\n"
        "Comandos disponíveis:\n"
        "• *{prefix}estados listar* - Lista todos os estados ativos\n"
        "• *{prefix}estados limpar [userId]* - Limpa o estado de um usuário específico\n"
        "• *{prefix}estados limpartodos* - Limpa todos os estados\n"
        "• *{prefix}estados salvar* - Força o salvamento dos estados\n"
        "• *{prefix}estados info [userId]* - Mostra informações detalhadas de um estado"
    ),
    "states_empty": "📝 Não há estados ativos no momento.",
    "states_user_required": "❌ Especifique o ID do usuário.",
    "state_cleared": "✅ Estado do usuário {user} foi limpo com sucesso.",
    "state_missing": "❌ Usuário {user} não possui estado ativo.",
    "states_cleared_all": "✅ {count} estados foram limpos.",
    "states_saved": "✅ Estados salvos com sucesso.",
    "states_save_failed": "❌ Falha ao salvar os estados. Verifique os logs.",
    "states_unknown_sub": "❌ Subcomando desconhecido: {sub}\nUse {prefix}estados para ver os comandos disponíveis.",

    # Form plugin
    "form_start": "Vamos preencher um formulário! Por favor, digite seu nome:",
    "form_in_progress": "Você está no meio de um formulário. Digite {field} ou use {prefix}cancelar para sair.",
    "form_in_progress_confirm": "Você está no meio de um formulário. Digite \"confirmar\" ou \"cancelar\".",
    "form_cancelled": "Formulário cancelado.",
    "form_invalid_name": "Por favor, digite um nome válido (pelo menos 3 caracteres):",
    "form_ask_email": "Obrigado, {name}! Agora, por favor, digite seu email:",
    "form_invalid_email": "Por favor, digite um email válido:",
    "form_ask_age": "Ótimo! Agora, por favor, digite sua idade:",
    "form_invalid_age": "Por favor, digite uma idade válida (entre 1 e 120):",
    "form_confirm": (
        "Por favor, confirme seus dados:\n\n"
        "Nome: {name}\nEmail: {email}\nIdade: {age}\n\n"
        "Digite \"confirmar\" para salvar ou \"cancelar\" para desistir."
    ),
    "form_invalid_confirm": "Por favor, digite \"confirmar\" para salvar seus dados ou \"cancelar\" para desistir.",
    "form_done": "Formulário enviado com sucesso! Obrigado por participar.",

    # Example plugin
    "example": "Este é um comando de exemplo do plugin de exemplo!",
    "eco_missing": "Por favor, forneça uma mensagem para ecoar.",
    "eco": "Eco: {message}",

    # Interactive plugin
    "buttons_missing": "Por favor, forneça um texto para a mensagem com botões.\n\nExemplo: {prefix}botoes Escolha uma opção",
    "buttons_footer": "Escolha uma das opções acima",
    "list_missing": "Por favor, forneça um título para a lista.\n\nExemplo: {prefix}lista Menu de opções",
    "list_text": "Selecione uma opção da lista",
    "list_button": "Ver opções",
    "poll_missing": "Por favor, forneça uma pergunta para a enquete.\n\nExemplo: {prefix}enquete Qual sua cor favorita?",
    "reaction_missing": "Por favor, responda a uma mensagem para adicionar uma reação.\n\nExemplo: Responda a uma mensagem com {prefix}reacao",
    "interactive_failed": "Erro ao enviar mensagem interativa: {error}",
    "menu_prompt": "O que você deseja fazer?",
    "menu_choice": "Você escolheu: {choice}",
    "menu_invalid": "Opção inválida. Toque em um dos botões ou digite cancelar.",
    "menu_cancelled": "Menu fechado.",
}


def get_text(key: str, **fmt) -> str:
    """
    Resolve a user-facing string.

    Returns the key itself when no text is defined for it.
    """
    text = TEXTS.get(key)
    if text is None:
        return key
    return text.format(**fmt) if fmt else text
