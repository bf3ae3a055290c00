import asyncio

from yagi import Engine, EngineConfig, create_client, user_message


async def chat_example():
    engine = Engine(
        EngineConfig(
            client=create_client("openai"),
            model="gpt-4.1-mini",
            system_message=lambda skill: "You are a helpful assistant.",
            params={"temperature": 0.7, "max_tokens": 1000},
        )
    )

    messages = [user_message("What's your name?")]
    content, messages = await engine.chat(messages)
    print("Assistant:", content)

    messages.append(user_message("Say that again, in French."))
    result = await engine.chat(messages)
    print("Assistant:", result.content)
    print(result)


if __name__ == "__main__":
    asyncio.run(chat_example())
