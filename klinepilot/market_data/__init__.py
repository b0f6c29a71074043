"""行情数据：K 线解析、CSV 读写与 Binance 行情客户端。"""
